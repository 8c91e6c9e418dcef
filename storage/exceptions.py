"""Таксономия ошибок диска.

Все ошибки - наследники HTTPException: сервисный слой поднимает их напрямую,
а роутеры пробрасывают через ``except HTTPException: raise``.
"""
from fastapi import HTTPException, status


class DriveError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal storage error"

    def __init__(self, detail: str = None, headers: dict = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class InvalidRequest(DriveError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class NotFound(DriveError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "File not found"


class Conflict(DriveError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Name already exists"


class QuotaExceeded(DriveError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Storage quota exceeded"


class ShareExpired(DriveError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Share link has expired"


class ShareLimitReached(DriveError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Share link has reached its access limit"


class BadExtractCode(DriveError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Wrong extraction code"


class FileTooLarge(DriveError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_detail = "File too large"


class RangeNotSatisfiable(DriveError):
    status_code = status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE
    default_detail = "Requested range not satisfiable"


class Unauthorized(DriveError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: str = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(DriveError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Operation not allowed"
