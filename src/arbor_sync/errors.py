"""Error taxonomy for the content graph and sync layer."""


class ArborError(Exception):
    """Base class for every error raised by this package."""


class AuthenticationError(ArborError):
    """Missing or rejected token. The service instance needs re-authentication."""


class NotFound(ArborError):
    """The requested path, node or repository does not exist."""


class ConflictError(ArborError):
    """A write carried a stale version token."""


class AlreadyExists(ConflictError):
    """The remote refused to create something that is already there."""


class PermissionDenied(ArborError):
    """The principal is not allowed to perform the write."""


class NetworkError(ArborError):
    """Transport-level failure or an unexpected response from the remote."""


class PartialFailure(ArborError):
    """A multi-file operation stopped after completing some of its items.

    Nothing is rolled back: ``moved`` lists the (old, new) pairs that were
    fully copied before the failure, the rest still live at the old location.
    """

    def __init__(
        self,
        message: str,
        *,
        completed: int,
        total: int,
        moved: list[tuple[str, str]] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.completed = completed
        self.total = total
        self.moved = list(moved or [])
        self.cause = cause

    @property
    def remaining(self) -> int:
        return self.total - self.completed
