"""Stable public API for building tooling on top of dapflash.

This module is the supported integration surface for third-party callers
(GUI/TUI frontends, production scripts). Avoid importing from private/internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from dapflash.backends.base import ProbeBackend
from dapflash.backends.pyocd_backend import PyOCDBackend
from dapflash.core.errors import (
    AttachFailed,
    BackendError,
    DapflashError,
    EraseFailed,
    FlashFailed,
    MissingSelection,
    ProbeError,
    ProbeNotFound,
    ProbeOpenFailed,
    ResetFailed,
    TargetLoadError,
    TargetValidationError,
    UnsupportedFormat,
)
from dapflash.core.format_detect import detect_format
from dapflash.core.gate import SelectionGate
from dapflash.core.model import (
    BinOptions,
    FirmwareFormat,
    FirmwareImage,
    FlashResult,
    GateState,
    ProbeInfo,
    SelectionState,
    StatusLevel,
    TargetMCU,
)
from dapflash.core.target_loader import load_targets

__all__ = [
    "DapflashError",
    "TargetLoadError",
    "TargetValidationError",
    "BackendError",
    "ProbeError",
    "ProbeNotFound",
    "ProbeOpenFailed",
    "AttachFailed",
    "EraseFailed",
    "FlashFailed",
    "ResetFailed",
    "UnsupportedFormat",
    "MissingSelection",
    "BinOptions",
    "FirmwareFormat",
    "FirmwareImage",
    "FlashResult",
    "GateState",
    "ProbeInfo",
    "SelectionState",
    "StatusLevel",
    "TargetMCU",
    "ProbeBackend",
    "PyOCDBackend",
    "SelectionGate",
    "detect_format",
    "Client",
]


class Client:
    """Public client wrapping the target catalog and the selection gate.

    Each ``on_*`` method drives one gate event and returns the status string
    to display. Hardware is only touched by ``on_erase``, ``on_flash`` and
    ``on_reset``; probe listing happens eagerly at construction and on
    ``on_probe_refresh``.
    """

    def __init__(self, *, backend: ProbeBackend | None = None) -> None:
        loaded = load_targets()
        self.load_warnings = loaded.warnings
        self._gate = SelectionGate(backend or PyOCDBackend(), loaded.targets)

    @property
    def selection(self) -> SelectionState:
        return self._gate.selection

    @property
    def state(self) -> GateState:
        return self._gate.state

    @property
    def status(self) -> str:
        return self._gate.selection.status

    def list_targets(self) -> list[TargetMCU]:
        return self._gate.list_targets()

    def list_probes(self) -> list[ProbeInfo]:
        return list(self._gate.selection.probes)

    def on_probe_refresh(self) -> str:
        return self._gate.on_probe_refresh()

    def on_probe_chosen(self, identifier: str) -> str:
        return self._gate.on_probe_chosen(identifier)

    def on_target_chosen(self, target: TargetMCU | str) -> str:
        return self._gate.on_target_chosen(target)

    def on_file_dropped_or_selected(self, path: str | Path) -> str:
        return self._gate.on_file_dropped_or_selected(path)

    def on_erase(self) -> str:
        return self._gate.on_erase()

    def on_flash(self) -> str:
        return self._gate.on_flash()

    def on_reset(self) -> str:
        return self._gate.on_reset()
