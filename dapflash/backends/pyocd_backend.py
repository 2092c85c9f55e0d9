"""pyOCD backend implementation."""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dapflash.core.errors import BackendError, ProbeNotFound, ProbeOpenFailed
from dapflash.core.model import BinOptions, FirmwareFormat, ProbeInfo, TargetMCU

LOGGER = logging.getLogger(__name__)


def _pyocd(module: str) -> Any:
    try:
        return importlib.import_module(module)
    except ImportError as exc:  # pragma: no cover - import failure path
        raise BackendError("pyOCD backend requires 'pyocd'. Install dependency and retry.") from exc


def _hardware_errors() -> tuple[type[BaseException], ...]:
    exceptions = _pyocd("pyocd.core.exceptions")
    return (exceptions.Error, OSError, ValueError)


@dataclass
class ProbeLink:
    """An opened pyOCD debug probe."""

    probe: Any
    unique_id: str
    is_open: bool = True


class PyOCDBackend:
    def __init__(self, *, options: dict[str, Any] | None = None) -> None:
        self.options = dict(options or {})

    def list_all(self) -> list[ProbeInfo]:
        aggregator = _pyocd("pyocd.probe.aggregator")
        try:
            probes = aggregator.DebugProbeAggregator.get_all_connected_probes()
        except _hardware_errors() as exc:
            raise BackendError(f"Probe enumeration failed: {exc}") from exc

        return [
            ProbeInfo(
                identifier=probe.description,
                unique_id=probe.unique_id,
                vendor=probe.vendor_name or "",
                product=probe.product_name or "",
            )
            for probe in probes
        ]

    def open(self, probe: ProbeInfo) -> ProbeLink:
        aggregator = _pyocd("pyocd.probe.aggregator")
        errors = _hardware_errors()
        try:
            matches = aggregator.DebugProbeAggregator.get_all_connected_probes(unique_id=probe.unique_id)
        except errors as exc:
            raise ProbeOpenFailed(f"Could not query probe {probe.identifier}: {exc}") from exc
        if not matches:
            raise ProbeNotFound(f"Probe {probe.identifier} ({probe.unique_id}) is no longer connected")

        raw = matches[0]
        try:
            raw.open()
        except errors as exc:
            try:
                raw.close()
            except errors as close_exc:
                LOGGER.warning("Closing probe %s after failed open failed: %s", probe.unique_id, close_exc)
            raise ProbeOpenFailed(f"Could not open probe {probe.identifier}: {exc}") from exc
        return ProbeLink(probe=raw, unique_id=probe.unique_id)

    def close(self, handle: ProbeLink) -> None:
        if not handle.is_open:
            return
        handle.is_open = False
        try:
            handle.probe.close()
        except _hardware_errors() as exc:
            LOGGER.warning("Closing probe %s failed: %s", handle.unique_id, exc)

    def attach(self, handle: ProbeLink, target: TargetMCU) -> Any:
        session_mod = _pyocd("pyocd.core.session")
        errors = _hardware_errors()

        options = dict(self.options)
        options["target_override"] = target.id
        if target.connect.frequency_hz is not None:
            options["frequency"] = target.connect.frequency_hz
        if target.connect.connect_mode is not None:
            options["connect_mode"] = target.connect.connect_mode
        if target.connect.pack is not None:
            options["pack"] = target.connect.pack

        # Session.open() opens the probe link itself.
        self.close(handle)
        try:
            session = session_mod.Session(handle.probe, auto_open=False, options=options)
        except errors as exc:
            raise BackendError(f"Could not create session for {target.id}: {exc}") from exc

        try:
            session.open()
        except errors as exc:
            try:
                session.close()
            except errors as close_exc:
                LOGGER.warning("Closing half-open session for %s failed: %s", target.id, close_exc)
            raise BackendError(f"Could not attach to {target.id}: {exc}") from exc
        return session

    def detach(self, session: Any) -> None:
        try:
            session.close()
        except _hardware_errors() as exc:
            LOGGER.warning("Closing session failed: %s", exc)

    def erase_all(self, session: Any) -> None:
        eraser_mod = _pyocd("pyocd.flash.eraser")
        try:
            eraser = eraser_mod.FlashEraser(session, eraser_mod.FlashEraser.Mode.CHIP)
            eraser.erase()
        except _hardware_errors() as exc:
            raise BackendError(f"Chip erase failed: {exc}") from exc

    def download_file(
        self,
        session: Any,
        path: Path,
        fmt: FirmwareFormat,
        bin_options: BinOptions,
    ) -> None:
        programmer_mod = _pyocd("pyocd.flash.file_programmer")

        kwargs: dict[str, Any] = {"file_format": fmt.value}
        if fmt is FirmwareFormat.BIN:
            kwargs["skip"] = bin_options.skip
            if bin_options.base_address is not None:
                kwargs["base_address"] = bin_options.base_address
        elif fmt not in (FirmwareFormat.HEX, FirmwareFormat.ELF):
            raise BackendError(f"Cannot download {path.name}: unsupported format '{fmt.value}'")

        try:
            # The chip was already erased; reset is issued separately on core 0.
            programmer = programmer_mod.FileProgrammer(session, chip_erase="sector", no_reset=True)
            programmer.program(str(path), **kwargs)
        except Exception as exc:
            # Image parsers raise their own exception types for corrupt files.
            raise BackendError(f"Programming {path.name} failed: {exc}") from exc

    def reset_core(self, session: Any, core_index: int) -> None:
        try:
            core = session.target.cores[core_index]
        except (AttributeError, KeyError, IndexError) as exc:
            raise BackendError(f"Target has no core {core_index}") from exc
        try:
            core.reset()
        except _hardware_errors() as exc:
            raise BackendError(f"Reset of core {core_index} failed: {exc}") from exc
