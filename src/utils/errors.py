"""Error taxonomy shared by sync, jobs, and attribution."""

from enum import Enum


class ErrorKind(str, Enum):
    """Tag carried by every application error."""

    AUTH = "auth"
    UPSTREAM_API = "upstream_api"
    STORAGE = "storage"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    CONFLICT = "conflict"

    @property
    def user_message(self) -> str:
        """Short caller-facing hint for what to do about the failure."""
        return _USER_MESSAGES[self]


_USER_MESSAGES = {
    ErrorKind.AUTH: "Please reinstall or reauthorize the GitHub integration.",
    ErrorKind.UPSTREAM_API: "GitHub is unavailable right now, try again later.",
    ErrorKind.STORAGE: "Internal fault while reading or writing stored data.",
    ErrorKind.VALIDATION: "The request was invalid.",
    ErrorKind.TIMEOUT: "The job ran out of time, try again later.",
    ErrorKind.CONFLICT: "A job for this repository is already running.",
}


class AttributionAppError(Exception):
    """Base class for all errors raised by this package."""

    kind: ErrorKind = ErrorKind.STORAGE

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause

    @property
    def user_message(self) -> str:
        return self.kind.user_message


class AuthError(AttributionAppError):
    """Credentials were rejected upstream (401/403). Never retried."""

    kind = ErrorKind.AUTH

    def __init__(self, message: str, status_code: int | None = None, cause: BaseException | None = None):
        super().__init__(message, cause)
        self.status_code = status_code


class UpstreamAPIError(AttributionAppError):
    """The GitHub API returned an error or could not be reached."""

    kind = ErrorKind.UPSTREAM_API

    def __init__(self, message: str, status_code: int | None = None, cause: BaseException | None = None):
        super().__init__(message, cause)
        self.status_code = status_code


class TransientUpstreamError(UpstreamAPIError):
    """Network failure, 5xx, or rate limiting. Safe to retry."""


class StorageError(AttributionAppError):
    """The local store failed. Propagated immediately without retry."""

    kind = ErrorKind.STORAGE


class ValidationError(AttributionAppError):
    """Malformed input to the attribution functions."""

    kind = ErrorKind.VALIDATION


class JobTimeoutError(AttributionAppError):
    """A job exceeded its wall-clock ceiling."""

    kind = ErrorKind.TIMEOUT


class JobAlreadyRunningError(AttributionAppError):
    """A job of the same kind is already running for the subject."""

    kind = ErrorKind.CONFLICT

    def __init__(self, subject: str, job_kind: str, lock_id: str):
        super().__init__(f"{job_kind} job already running for {subject} (job {lock_id})")
        self.subject = subject
        self.job_kind = job_kind
        self.lock_id = lock_id
