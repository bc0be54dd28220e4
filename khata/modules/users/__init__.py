# Users module
from khata.modules.users.models import User

__all__ = ["User"]
