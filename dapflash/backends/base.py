"""Probe backend interfaces."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from dapflash.core.model import BinOptions, FirmwareFormat, ProbeInfo, TargetMCU


class ProbeBackend(Protocol):
    """Narrow contract over the probe-and-flash library.

    ``open`` raises ``ProbeNotFound``/``ProbeOpenFailed``; every other method
    raises ``BackendError`` and leaves mapping to the caller.
    """

    def list_all(self) -> list[ProbeInfo]:
        """Enumerate currently connected probes."""

    def open(self, probe: ProbeInfo) -> Any:
        """Open the probe and return a handle owned by the caller."""

    def close(self, handle: Any) -> None:
        """Release a handle returned by ``open``."""

    def attach(self, handle: Any, target: TargetMCU) -> Any:
        """Attach an opened probe to the named target."""

    def detach(self, session: Any) -> None:
        """Tear down a session returned by ``attach``."""

    def erase_all(self, session: Any) -> None:
        """Erase the whole flash of the attached target."""

    def download_file(
        self,
        session: Any,
        path: Path,
        fmt: FirmwareFormat,
        bin_options: BinOptions,
    ) -> None:
        """Program a firmware file into the attached target."""

    def reset_core(self, session: Any, core_index: int) -> None:
        """Reset one core of the attached target."""
