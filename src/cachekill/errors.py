"""Error types and exit codes for cachekill."""

import errno
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    """Process exit codes reported by the CLI."""

    SUCCESS = 0
    PARTIAL = 2  # Some entries failed or conflicted
    NOTHING_TO_DO = 3
    CONFIG_ERROR = 4
    FATAL = 5


class FailureReason(str, Enum):
    """Why a path was skipped or an entry failed."""

    PERMISSION_DENIED = "permission_denied"
    PATH_ESCAPES_SCAN_BOUNDARY = "path_escapes_scan_boundary"
    MANIFEST_MISSING_OR_CORRUPT = "manifest_missing_or_corrupt"
    RESTORE_CONFLICT = "restore_conflict"
    UNREADABLE_MANIFEST_FIELD = "unreadable_manifest_field"
    CROSS_DEVICE_MOVE = "cross_device_move"
    NEVER_TOUCH = "never_touch"
    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"


class CacheKillError(Exception):
    """Base class for run-level failures."""

    reason: FailureReason = FailureReason.IO_ERROR
    exit_code: ExitCode = ExitCode.FATAL

    def __init__(self, message: str, reason: FailureReason | None = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class ConfigError(CacheKillError):
    """Configuration could not be loaded or is invalid."""

    exit_code = ExitCode.CONFIG_ERROR


class ManifestMissingOrCorruptError(CacheKillError):
    """No usable backup manifest to restore from."""

    reason = FailureReason.MANIFEST_MISSING_OR_CORRUPT


class CrossDeviceMoveError(CacheKillError):
    """A move across filesystems could not be completed."""

    reason = FailureReason.CROSS_DEVICE_MOVE


class SourceRemovalError(CacheKillError):
    """A cross-device copy completed but the source was only partly removed."""


class CandidateUnreadable(CacheKillError):
    """The root of a cache candidate cannot be read."""


def classify_os_error(exc: BaseException) -> FailureReason:
    """Map an OS-level exception to a failure reason."""
    if isinstance(exc, CacheKillError):
        return exc.reason
    if isinstance(exc, PermissionError):
        return FailureReason.PERMISSION_DENIED
    if isinstance(exc, FileNotFoundError):
        return FailureReason.NOT_FOUND
    if isinstance(exc, OSError):
        if exc.errno in (errno.EACCES, errno.EPERM):
            return FailureReason.PERMISSION_DENIED
        if exc.errno == errno.EXDEV:
            return FailureReason.CROSS_DEVICE_MOVE
        if exc.errno == errno.ENOENT:
            return FailureReason.NOT_FOUND
    return FailureReason.IO_ERROR
