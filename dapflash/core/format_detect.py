"""Firmware format detection from file paths."""

from __future__ import annotations

from pathlib import Path

from dapflash.core.errors import UnsupportedFormat
from dapflash.core.model import BinOptions, FirmwareFormat, FirmwareImage

_EXTENSION_FORMATS = {
    "bin": FirmwareFormat.BIN,
    "hex": FirmwareFormat.HEX,
    "elf": FirmwareFormat.ELF,
}


def detect_format(path: str | Path) -> FirmwareFormat:
    name = Path(path).name
    if name.endswith("."):
        return FirmwareFormat.UNSUPPORTED
    suffix = Path(name).suffix
    if not suffix:
        # Build outputs without an extension are linker ELF images.
        return FirmwareFormat.ELF
    return _EXTENSION_FORMATS.get(suffix[1:].lower(), FirmwareFormat.UNSUPPORTED)


def load_image(path: str | Path, bin_options: BinOptions | None = None) -> FirmwareImage:
    fmt = detect_format(path)
    if fmt is FirmwareFormat.UNSUPPORTED:
        raise UnsupportedFormat(f"Unsupported file format: {Path(path).name}")
    return FirmwareImage(
        path=Path(path),
        format=fmt,
        bin_options=bin_options or BinOptions(),
    )
