"""
Domain errors

Raised from the service layer and rendered by FastAPI as {"detail": code}.
Every error carries a stable machine-readable code.
"""

from fastapi import HTTPException, status


class DomainError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str = ""):
        super().__init__(status_code=self.status_code, detail=code)
        self.code = code
        self.message = message or code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationFailed(DomainError):
    """Bad input: inactive/unknown shop, staff or service, off-grid or past slot, bad phone"""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(DomainError):
    """slot_taken, blocked or block_overlaps_booking"""

    status_code = status.HTTP_409_CONFLICT


class InvalidManageLink(DomainError):
    """Unknown, revoked, expired or malformed manage token; deliberately indistinguishable"""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self):
        super().__init__("invalid_manage_link", "Invalid or expired link")
