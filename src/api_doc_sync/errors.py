"""Exception hierarchy shared by every stage of the document-to-client pipeline.

Fetch and parse errors are scoped to a single document source; aggregation,
missing-precondition and stage errors describe the run as a whole.
"""


class DocSyncError(Exception):
    """Base class for all api-doc-sync errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FetchError(DocSyncError):
    """A document could not be retrieved (network failure, non-2xx, unreadable file).

    Attributes:
        url: The URL or path that failed, when known.
        status: The HTTP status code for non-2xx responses.
    """

    def __init__(self, message: str, url: str | None = None, status: int | None = None):
        self.url = url
        self.status = status
        super().__init__(message)


class ParseError(DocSyncError):
    """A payload does not match the shape an adapter expects."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)


class MergeError(DocSyncError):
    """Multiple documents could not be collapsed into one payload."""


class InvokeError(DocSyncError):
    """One or more configured document sources failed.

    Attributes:
        errors: The structured per-source failures that caused this error.
    """

    def __init__(self, message: str, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message)


class MissingServiceError(DocSyncError):
    """No service definition is available when one is required."""


class GenerationError(DocSyncError):
    """The generated bundle failed validation.

    Attributes:
        errors: Mapping of filename to the validation message.
    """

    def __init__(self, message: str, errors: dict[str, str] | None = None):
        self.errors = errors or {}
        super().__init__(message)


class OutputError(DocSyncError):
    """Writing the bundle to disk was refused or failed."""


class StageError(DocSyncError):
    """A pipeline stage failed; the message is prefixed with the stage name.

    Attributes:
        stage: Name of the failing stage.
        cause: The original exception.
    """

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage {stage} failed: {cause}")
