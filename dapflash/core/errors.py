"""Domain-specific errors for dapflash."""

from __future__ import annotations


class DapflashError(Exception):
    """Base error for dapflash."""


class TargetValidationError(DapflashError):
    """Raised when a target file does not conform to schema or semantics."""


class TargetLoadError(DapflashError):
    """Raised when loading target sources fails."""


class BackendError(DapflashError):
    """Raised by a probe backend when the hardware layer reports a failure."""


class ProbeError(DapflashError):
    """Base probe acquisition error."""


class ProbeNotFound(ProbeError):
    """Raised when the selected probe index no longer resolves to a probe."""


class ProbeOpenFailed(ProbeError):
    """Raised when the transport rejects opening the probe."""


class AttachFailed(DapflashError):
    """Raised when a session cannot be attached to the target."""


class EraseFailed(DapflashError):
    """Raised when the full-chip erase fails."""


class FlashFailed(DapflashError):
    """Raised when downloading the image fails.

    ``cause`` holds the underlying error (missing file, corrupt image, or the
    write rejected by the chip).
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ResetFailed(DapflashError):
    """Raised when resetting core 0 fails."""


class UnsupportedFormat(DapflashError):
    """Raised when a firmware file extension is not bin, hex or elf."""


class MissingSelection(DapflashError):
    """Raised when an action is requested without a required selection."""
