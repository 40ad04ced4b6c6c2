"""
Error taxonomy for locker administration.

Every error carries a human-readable message, a stable machine code and the
HTTP status the routes answer with, so blueprints can serialise any of them
the same way.
"""


class LockerAdminError(Exception):
    """Base error with a specific error code and HTTP status."""

    default_code = 'LOCKER_ADMIN_ERROR'
    default_status = 400

    def __init__(self, message: str, code: str = None, status_code: int = None):
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        super().__init__(message)

    def to_dict(self):
        return {'success': False, 'error': self.message, 'code': self.code}


class AlreadyOccupiedError(LockerAdminError):
    """The locker already holds an active assignment."""
    default_code = 'LOCKER_OCCUPIED'
    default_status = 409


class LastElementError(LockerAdminError):
    """The axis has a single locker left and cannot shrink."""
    default_code = 'LAST_AXIS_ELEMENT'
    default_status = 400


class OccupiedAxisElementError(LockerAdminError):
    """The terminal locker of an axis is occupied and cannot be removed."""
    default_code = 'AXIS_ELEMENT_OCCUPIED'
    default_status = 409


# Short name used by the grid operations
OccupiedError = OccupiedAxisElementError


class EmptyCanvasError(LockerAdminError):
    """A signature was exported before anything was drawn."""
    default_code = 'EMPTY_SIGNATURE'
    default_status = 400


class NotFoundError(LockerAdminError):
    default_code = 'NOT_FOUND'
    default_status = 404


class PermissionDeniedError(LockerAdminError):
    """The backing store rejected the call for the current credentials."""
    default_code = 'PERMISSION_DENIED'
    default_status = 403


class RepositoryError(LockerAdminError):
    """Transport or backend failure while talking to the document store."""
    default_code = 'REPOSITORY_UNAVAILABLE'
    default_status = 503


class ValidationError(LockerAdminError):
    default_code = 'VALIDATION_FAILED'
    default_status = 400


class PartialFailureError(LockerAdminError):
    """
    The primary mutation succeeded but a dependent cleanup step failed.

    ``result`` holds whatever the primary step produced so callers can still
    report success for it.
    """
    default_code = 'PARTIAL_FAILURE'
    default_status = 200

    def __init__(self, message: str, result=None, cause: Exception = None, code: str = None):
        super().__init__(message, code=code)
        self.result = result
        self.cause = cause

    def to_dict(self):
        return {'success': True, 'warning': self.message, 'code': self.code}
