# Voice capture module
