"""Exceptions raised by Continuum.

Server errors are decoded once, in the transport, into one class per
CouchDB error code. Callers branch on the class, never on response bodies.
"""

from typing import Any


class ContinuumError(Exception):
    """Base exception for Continuum operations."""

    pass


class ConfigurationError(ContinuumError):
    """Raised when required configuration is missing or inconsistent."""

    pass


class TransportFailure(ContinuumError):
    """Raised when the cluster could not be reached (DNS, refused, timeout)."""

    def __init__(self, method: str, url: str, reason: str) -> None:
        self.method = method
        self.url = url
        self.reason = reason
        super().__init__(f"{method} {url} failed: {reason}")


class CouchServerError(ContinuumError):
    """Raised when CouchDB answers with an error.

    Attributes:
        method: HTTP method of the failed request
        url: URL of the failed request
        status_code: HTTP status returned by the server
        error: CouchDB error code, e.g. ``not_found``
        reason: Human readable reason supplied by the server
        body: The raw decoded body (or text when it was not JSON)
    """

    code: str | None = None

    def __init__(
        self,
        method: str,
        url: str,
        status_code: int,
        error: str,
        reason: str,
        body: Any = None,
    ) -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.error = error
        self.reason = reason
        self.body = body
        super().__init__(f"{method} {url} -> {status_code} {error}: {reason}")


class NotFoundError(CouchServerError):
    code = "not_found"


class UnauthorizedError(CouchServerError):
    code = "unauthorized"


class DatabaseExistsError(CouchServerError):
    code = "file_exists"


class IllegalDatabaseNameError(CouchServerError):
    code = "illegal_database_name"


class ConflictError(CouchServerError):
    code = "conflict"


SERVER_ERRORS: dict[str, type[CouchServerError]] = {
    cls.code: cls
    for cls in (
        NotFoundError,
        UnauthorizedError,
        DatabaseExistsError,
        IllegalDatabaseNameError,
        ConflictError,
    )
    if cls.code is not None
}


class DatabaseInUseError(ContinuumError):
    """Raised when an active task or scheduled job references a database."""

    def __init__(self, db_name: str) -> None:
        self.db_name = db_name
        super().__init__(f"{db_name} is still in use.")


class MismatchError(ContinuumError):
    """Base for replica consistency failures."""

    pass


class ReplicaMismatchError(MismatchError):
    """Raised when primary and replica hold different document counts."""

    def __init__(self, source_count: int, target_count: int) -> None:
        self.source_count = source_count
        self.target_count = target_count
        super().__init__(
            "Primary and replica do not have the same number of documents "
            f"({source_count} != {target_count})."
        )


class PrimaryChangedError(MismatchError):
    """Raised when the primary received writes while it was being copied."""

    def __init__(self, db_name: str, before: Any, after: Any) -> None:
        self.db_name = db_name
        self.before = before
        self.after = after
        super().__init__(f"{db_name} is still receiving updates. Exiting...")


class ReplicationTimeoutError(ContinuumError):
    """Raised when a replication does not catch up within the timeout."""

    pass
