"""Error taxonomy shared by the pipeline, chat protocol, and HTTP layer.

Each error carries the wire code reported to the mobile client and the HTTP
status the API maps it to. Soft degradations are not exceptions; they are
recorded as StageResult objects by the pipeline.
"""


class ToolFixError(Exception):
    """Base class for errors surfaced to the caller."""
    code = "internal"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(ToolFixError):
    """Malformed or insufficient caller input."""
    code = "invalid-argument"
    http_status = 400


class UnauthenticatedError(ToolFixError):
    code = "unauthenticated"
    http_status = 401


class PermissionDeniedError(ToolFixError):
    """Caller is authenticated but does not own the resource."""
    code = "permission-denied"
    http_status = 403


class NotFoundError(ToolFixError):
    code = "not-found"
    http_status = 404


class ConcurrentUpdateError(ToolFixError):
    """Session write lost the compare-and-swap race too many times."""
    code = "aborted"
    http_status = 409


class UpstreamError(ToolFixError):
    """A fatal completion-service call failed. Safe to retry the operation."""
    code = "internal"
    http_status = 502
