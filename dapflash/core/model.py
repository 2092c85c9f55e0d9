"""Core data models used across loader, gate, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from dapflash.core.errors import ResetFailed


class FirmwareFormat(str, Enum):
    BIN = "bin"
    HEX = "hex"
    ELF = "elf"
    UNSUPPORTED = "unsupported"


class GateState(str, Enum):
    NO_TARGET = "no_target"
    TARGET_SELECTED = "target_selected"
    TARGET_AND_FILE_SELECTED = "target_and_file_selected"


class StatusLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class BinOptions:
    base_address: int | None = None
    skip: int = 0


@dataclass(frozen=True)
class ConnectOptions:
    frequency_hz: int | None = None
    connect_mode: str | None = None
    pack: str | None = None


@dataclass(frozen=True)
class TargetMCU:
    id: str
    name: str
    description: str = ""
    connect: ConnectOptions = field(default_factory=ConnectOptions)
    bin_defaults: BinOptions = field(default_factory=BinOptions)

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class ProbeInfo:
    identifier: str
    unique_id: str
    vendor: str = ""
    product: str = ""


@dataclass(frozen=True)
class FirmwareImage:
    path: Path
    format: FirmwareFormat
    bin_options: BinOptions = field(default_factory=BinOptions)

    def __post_init__(self) -> None:
        if self.format is FirmwareFormat.UNSUPPORTED:
            raise ValueError(f"FirmwareImage cannot carry an unsupported format: {self.path}")


@dataclass
class Session:
    """A probe attached to a target for the duration of one action."""

    probe: ProbeInfo
    target: TargetMCU
    handle: Any
    native: Any


@dataclass(frozen=True)
class FlashResult:
    """Outcome of a flash that wrote the image; a failed restart is kept on ``reset_error``."""

    image: FirmwareImage
    target: TargetMCU
    reset_error: ResetFailed | None = None

    @property
    def restarted(self) -> bool:
        return self.reset_error is None


@dataclass
class SelectionState:
    probes: tuple[ProbeInfo, ...] = ()
    probe_index: int | None = None
    target: TargetMCU | None = None
    image: FirmwareImage | None = None
    status: str = ""
    status_level: StatusLevel = StatusLevel.INFO

    @property
    def probe(self) -> ProbeInfo | None:
        if self.probe_index is None:
            return None
        return self.probes[self.probe_index]
