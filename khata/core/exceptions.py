"""
Error taxonomy shared by every module.

Services raise these directly; they are ``HTTPException`` subclasses so
FastAPI turns them into ``{"detail": ...}`` responses with the right status.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Missing or malformed input"""

    def __init__(self, detail: Any = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    """Unknown wallet/user/partner/loan, or a status/ownership guard failed.

    The two cases are deliberately indistinguishable to the caller.
    """

    def __init__(self, detail: Any = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    """Duplicate record or a transition that was already applied"""

    def __init__(self, detail: Any = "Conflict", status_code: int = status.HTTP_409_CONFLICT):
        super().__init__(status_code=status_code, detail=detail)


class ForbiddenError(HTTPException):
    """Caller does not match the loan party allowed to act"""

    def __init__(self, detail: Any = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UpstreamError(HTTPException):
    """External AI provider or blockchain call failed"""

    def __init__(
        self,
        provider: str,
        message: str,
        details: Optional[Any] = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    ):
        self.provider = provider
        super().__init__(
            status_code=status_code,
            detail={"error": message, "provider": provider, "details": details},
        )


class MisconfigurationError(HTTPException):
    """A required contract address, key or API key is not configured"""

    def __init__(self, detail: Any):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class InternalError(HTTPException):
    """Unexpected database or logic failure"""

    def __init__(self, detail: Any = "Internal server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
