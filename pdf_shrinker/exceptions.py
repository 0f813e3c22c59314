class ShrinkerError(Exception):
    """Base exception for all pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BadRequestError(ShrinkerError):
    """Raised when the multipart body cannot be decoded into an upload."""

    status_code = 400


class DocumentTooLargeError(BadRequestError):
    """Raised when the declared upload size exceeds the configured maximum."""

    status_code = 413


class MalformedDocumentError(ShrinkerError):
    """Raised when the payload cannot be parsed as a PDF document."""

    status_code = 422


class StorageError(ShrinkerError):
    """Raised when a transient artifact cannot be written or read."""

    status_code = 500


class TransportError(ShrinkerError):
    """Raised when the client goes away while the upload is being received."""

    status_code = 499
