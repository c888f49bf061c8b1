"""Error taxonomy for the storage and replication core.

The core raises these exceptions and never encodes transport semantics;
the HTTP boundary owns the translation of ``ErrorKind`` to status codes.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_TYPE = "INVALID_TYPE"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    TOO_MANY_FILES = "TOO_MANY_FILES"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    STORAGE_FULL = "STORAGE_FULL"
    IO_ERROR = "IO_ERROR"
    TRANSFER_TIMEOUT = "TRANSFER_TIMEOUT"
    REMOTE_UNREACHABLE = "REMOTE_UNREACHABLE"
    REMOTE_REJECTED = "REMOTE_REJECTED"
    CHECKSUM_MISMATCH = "CHECKSUM_MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    ALL_TIERS_UNAVAILABLE = "ALL_TIERS_UNAVAILABLE"
    SYNC_IN_PROGRESS = "SYNC_IN_PROGRESS"
    SYNC_DISABLED = "SYNC_DISABLED"


class VaultError(Exception):
    """
    Base exception class for all vault errors.
    """
    kind: ErrorKind = ErrorKind.IO_ERROR


class InvalidTypeError(VaultError):
    """
    Raised when a file's extension or MIME type is not on the allow-list.
    """
    kind = ErrorKind.INVALID_TYPE


class PayloadTooLargeError(VaultError):
    """
    Raised when an upload exceeds the configured size ceiling.
    """
    kind = ErrorKind.PAYLOAD_TOO_LARGE


class TooManyFilesError(VaultError):
    """
    Raised when a single upload request carries more files than allowed.
    """
    kind = ErrorKind.TOO_MANY_FILES


class ProcessingFailedError(VaultError):
    """
    Raised when content processing fails and no fallback is possible.
    """
    kind = ErrorKind.PROCESSING_FAILED


class StorageFullError(VaultError):
    """
    Raised when the local tier has insufficient space.
    """
    kind = ErrorKind.STORAGE_FULL


class StorageIOError(VaultError):
    """
    Raised when a local tier write or read fails for any other reason.
    """
    kind = ErrorKind.IO_ERROR


class TransferError(VaultError):
    """
    Base class for recoverable replication failures.

    These drive the retry state machine and never reach the uploader.
    """


class TransferTimeoutError(TransferError):
    kind = ErrorKind.TRANSFER_TIMEOUT


class RemoteUnreachableError(TransferError):
    kind = ErrorKind.REMOTE_UNREACHABLE


class RemoteRejectedError(TransferError):
    kind = ErrorKind.REMOTE_REJECTED


class ChecksumMismatchError(TransferError):
    """
    Raised when bytes read back from a tier do not match the stored checksum.
    """
    kind = ErrorKind.CHECKSUM_MISMATCH


class NotFoundError(VaultError):
    """
    Raised when a file, a tier object or a replication record does not exist.
    """
    kind = ErrorKind.NOT_FOUND


class AllTiersUnavailableError(VaultError):
    """
    Raised when neither tier can serve a file's bytes.
    """
    kind = ErrorKind.ALL_TIERS_UNAVAILABLE


class SyncInProgressError(VaultError):
    """
    Raised when an operation needs a record that another worker holds IN_PROGRESS.
    """
    kind = ErrorKind.SYNC_IN_PROGRESS


class SyncDisabledError(VaultError):
    """
    Raised when replication is requested but no remote tier is configured.
    """
    kind = ErrorKind.SYNC_DISABLED
