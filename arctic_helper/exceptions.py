"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class ArcticHelperError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(ArcticHelperError):
    """Raised for issues related to configuration loading or validation."""


class CatalogUnavailable(ArcticHelperError):
    """Raised when no catalog source (remote, cache, local or bundled) could be loaded."""


class CatalogError(ArcticHelperError):
    """Raised when catalog content cannot be turned into a usable download."""


class UnknownCatalogEntry(ArcticHelperError):
    """Raised when an id does not exist in the current catalog snapshot."""


class UnknownModel(UnknownCatalogEntry):
    """Raised when a model id is not present in the catalog."""


class UnknownVariant(UnknownCatalogEntry):
    """Raised when a variant id is not present in the selected model."""


class UnknownLora(UnknownCatalogEntry):
    """Raised when a LoRA id is not present in the catalog."""


class EngineBusy(ArcticHelperError):
    """Raised when a batch is enqueued while another one is still active."""

    def __init__(self, message: str = "A download is already active. Cancel it first."):
        super().__init__(message)


class NothingToDownload(ArcticHelperError):
    """Raised when a batch is enqueued without any artifacts."""


class NetworkError(ArcticHelperError):
    """
    A transfer failed at the HTTP layer.

    The download engine reports these as ``Failed`` events; they never cross
    the batch boundary.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class IoError(ArcticHelperError):
    """A transfer failed while writing to or renaming on the local filesystem."""


class Unauthorized(ArcticHelperError):
    """Raised when the LoRA host rejects a request with HTTP 401 or 403."""

    def __init__(
        self,
        message: str = (
            "Civitai rejected the request. Add a Civitai API token to download "
            "or inspect this LoRA."
        ),
    ):
        super().__init__(message)


class LoraNotFound(ArcticHelperError):
    """Raised when the LoRA host reports that a model version does not exist."""


class TransientError(ArcticHelperError):
    """Raised for LoRA host failures that may succeed on a later attempt."""


class DownloadFailed(ArcticHelperError):
    """Raised by awaiting helpers when their single-item batch failed."""


class DownloadCancelled(ArcticHelperError):
    """Raised by awaiting helpers when their batch was cancelled."""


class UpdateError(ArcticHelperError):
    """Raised when the update manifest is missing, malformed or unreachable."""


class FileIntegrityError(ArcticHelperError):
    """Raised when a downloaded file fails a post-download integrity check."""
