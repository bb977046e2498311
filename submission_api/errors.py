"""Error taxonomy shared by the workflow and the HTTP boundary.

Every error carries a client-facing ``message``; the HTTP layer turns it into
``{"message": ...}`` with ``status_code``. Nothing else is exposed to clients.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 400


class ConflictError(ServiceError):
    status_code = 400


class AuthError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class UpstreamError(ServiceError):
    status_code = 500


class InternalError(ServiceError):
    status_code = 500


class StorageError(Exception):
    """Raised by object-store backends; never shown to clients directly."""
