from .client import MultipartClient
from .config_manager import ConfigManager, UploadConfig
from .exceptions import (
    ChecksumMismatchError,
    ClientInputError,
    ManifestRejectedError,
    MultipartUploadError,
    RetryExhaustedError,
    ServerError,
    TransportError,
    UploadCancelledError,
)
from .models import (
    CompletedPart,
    CompleteMultipartUploadOutput,
    PartResult,
    UploadSession,
)
from .upload_management.bandwidth_limiter import BandwidthLimiter
from .upload_management.progress_listener import (
    DataTransferStatus,
    DataTransferType,
    TqdmProgressListener,
)

__version__ = "1.0.0"

__all__ = [
    "MultipartClient",
    "ConfigManager",
    "UploadConfig",
    "UploadSession",
    "PartResult",
    "CompletedPart",
    "CompleteMultipartUploadOutput",
    "BandwidthLimiter",
    "DataTransferStatus",
    "DataTransferType",
    "TqdmProgressListener",
    "MultipartUploadError",
    "ClientInputError",
    "ServerError",
    "ManifestRejectedError",
    "TransportError",
    "RetryExhaustedError",
    "ChecksumMismatchError",
    "UploadCancelledError",
]
