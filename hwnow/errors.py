"""Domain exceptions shared by the persistence layer, API and dashboard store.

Each exception carries the HTTP status it maps to so the API error handlers
and the HTTP dashboard backend can translate in both directions.
"""


class HWnowError(Exception):
    """Base class for all HWnow errors."""

    status_code: int = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class ValidationError(HWnowError):
    """A request is missing a required field or carries an invalid value."""

    status_code = 400


class NotFoundError(HWnowError):
    """The page, widget or process does not exist."""

    status_code = 404


class ConflictError(HWnowError):
    """The operation conflicts with existing state (e.g. duplicate page id)."""

    status_code = 409


class LastPageError(ConflictError):
    """Refused to delete a user's only remaining page."""


class PersistenceError(HWnowError):
    """The store could not be reached or the write failed and was rolled back."""

    status_code = 503


class ProcessControlError(HWnowError):
    """A GPU process control operation could not be carried out."""

    status_code = 400


class ProtectedProcessError(ProcessControlError):
    """The target process is on the protected/critical list."""

    status_code = 403


class ProcessNotFoundError(ProcessControlError):
    """No process with the given PID exists."""

    status_code = 404


_BY_STATUS: dict[int, type[HWnowError]] = {
    400: ValidationError,
    403: ProtectedProcessError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def error_for_status(status_code: int, detail: str) -> HWnowError:
    """Build the domain exception matching an HTTP error status."""
    cls = _BY_STATUS.get(status_code, PersistenceError)
    return cls(detail)
