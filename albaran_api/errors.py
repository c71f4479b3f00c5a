"""
Service-layer error taxonomy.

Services raise these instead of HTTPException so that the same rules can be
exercised without a request; main.py renders them as {"detail": code}.
"""
from typing import Optional


class ServiceError(Exception):
    status_code: int = 500

    def __init__(self, code: str, status_code: Optional[int] = None):
        super().__init__(code)
        self.code = code
        if status_code is not None:
            self.status_code = status_code


class NotFound(ServiceError):
    """Absent or not visible to the caller; both look the same from outside."""
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class InvalidState(ServiceError):
    """The lifecycle state of the target forbids the operation."""
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class UpstreamFailure(ServiceError):
    """Blob store, renderer or another third party failed."""
    status_code = 502
