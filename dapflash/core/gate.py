"""Selection gate: the event-driven state machine behind every frontend.

Frontends (CLI, GUI, scripts) feed user events into a ``SelectionGate`` and
display the status string each handler returns. Every hardware action runs
its own open -> attach -> act -> release cycle synchronously; errors never
escape a handler and never clear a previously valid selection.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from pathlib import Path

from dapflash.backends.base import ProbeBackend
from dapflash.core.errors import (
    AttachFailed,
    BackendError,
    DapflashError,
    EraseFailed,
    FlashFailed,
    MissingSelection,
    ProbeNotFound,
    ProbeOpenFailed,
    ResetFailed,
    UnsupportedFormat,
)
from dapflash.core.flasher import FlashOrchestrator
from dapflash.core.format_detect import load_image
from dapflash.core.model import (
    BinOptions,
    FirmwareImage,
    GateState,
    SelectionState,
    Session,
    StatusLevel,
    TargetMCU,
)
from dapflash.core.probes import ProbeRegistry
from dapflash.core.session import TargetSession

LOGGER = logging.getLogger(__name__)

STATUS_SELECT_TARGET = "select a target"
STATUS_SELECT_PROBE = "select a probe"
STATUS_SELECT_FILE = "select a firmware file"
STATUS_UNSUPPORTED_FORMAT = "unsupported file format"
STATUS_ERASED = "erase complete"
STATUS_FLASHED = "flash complete"
STATUS_RESET = "reset complete"


class SelectionGate:
    def __init__(
        self,
        backend: ProbeBackend,
        targets: Mapping[str, TargetMCU],
    ) -> None:
        self.targets = dict(targets)
        self.registry = ProbeRegistry(backend)
        self.sessions = TargetSession(backend)
        self.flasher = FlashOrchestrator(self.sessions)
        self.selection = SelectionState()
        self.state = GateState.NO_TARGET
        self.bin_override: BinOptions | None = None
        self.on_probe_refresh()

    def list_targets(self) -> list[TargetMCU]:
        return sorted(self.targets.values(), key=lambda t: t.id)

    def find_target(self, target_id: str) -> TargetMCU | None:
        return self.targets.get(target_id.strip().lower())

    # Selection events

    def on_probe_refresh(self) -> str:
        try:
            probes = self.registry.list()
        except BackendError as exc:
            self.selection.probes = ()
            self.selection.probe_index = None
            return self._set_status(f"probe enumeration failed: {exc}", StatusLevel.ERROR)

        self.selection.probes = probes
        self.selection.probe_index = 0 if probes else None
        if not probes:
            return self._set_status("no probes found", StatusLevel.INFO)
        return self._set_status(f"found {len(probes)} probe(s)", StatusLevel.INFO)

    def on_probe_chosen(self, identifier: str) -> str:
        index = self.registry.index_of(identifier)
        if index is None:
            return self._set_status(f"probe not found: {identifier}", StatusLevel.ERROR)
        self.selection.probe_index = index
        return self._set_status(f"probe: {self.selection.probes[index].identifier}", StatusLevel.INFO)

    def on_target_chosen(self, target: TargetMCU | str) -> str:
        if isinstance(target, str):
            resolved = self.find_target(target)
            if resolved is None:
                known = ", ".join(sorted(self.targets))
                return self._set_status(f"unknown target '{target}'. Available: {known}", StatusLevel.ERROR)
            target = resolved

        self.selection.target = target
        if self.selection.image is not None:
            # Bin placement follows the newly selected target's defaults.
            self.selection.image = replace(self.selection.image, bin_options=self._bin_options())
            self.state = GateState.TARGET_AND_FILE_SELECTED
        else:
            self.state = GateState.TARGET_SELECTED
        return self._set_status(f"target: {target.id}", StatusLevel.INFO)

    def on_file_dropped_or_selected(self, path: str | Path) -> str:
        try:
            image = load_image(path, self._bin_options())
        except UnsupportedFormat as exc:
            LOGGER.info("%s", exc)
            return self._set_status(STATUS_UNSUPPORTED_FORMAT, StatusLevel.ERROR)

        self.selection.image = image
        if self.state is not GateState.NO_TARGET:
            self.state = GateState.TARGET_AND_FILE_SELECTED
        return self._set_status(f"loaded {image.path.name} ({image.format.value})", StatusLevel.INFO)

    # Hardware actions

    def on_erase(self) -> str:
        return self._run_action("erase", self._erase)

    def on_flash(self) -> str:
        return self._run_action("flash", self._flash, needs_file=True)

    def on_reset(self) -> str:
        return self._run_action("reset", self._reset)

    def _erase(self, session: Session, image: FirmwareImage | None) -> str:
        self.sessions.erase(session)
        return self._set_status(STATUS_ERASED, StatusLevel.SUCCESS)

    def _flash(self, session: Session, image: FirmwareImage | None) -> str:
        if image is None:
            raise MissingSelection(STATUS_SELECT_FILE)
        result = self.flasher.flash(session, image)
        if result.reset_error is not None:
            return self._set_status(
                f"flash complete, but reset failed: {result.reset_error}",
                StatusLevel.ERROR,
            )
        return self._set_status(STATUS_FLASHED, StatusLevel.SUCCESS)

    def _reset(self, session: Session, image: FirmwareImage | None) -> str:
        self.sessions.reset(session)
        return self._set_status(STATUS_RESET, StatusLevel.SUCCESS)

    def _run_action(
        self,
        name: str,
        action: Callable[[Session, FirmwareImage | None], str],
        *,
        needs_file: bool = False,
    ) -> str:
        try:
            target, index, image = self._require_selections(needs_file=needs_file)
        except MissingSelection as exc:
            LOGGER.info("Rejected %s: %s", name, exc)
            return self._set_status(str(exc), StatusLevel.ERROR)

        LOGGER.info("Starting %s on %s", name, target.id)
        try:
            with self.sessions.scope(self.registry, index, target) as session:
                return action(session, image)
        except ProbeNotFound as exc:
            return self._fail(name, f"probe not found: {exc}")
        except ProbeOpenFailed as exc:
            return self._fail(name, f"probe open failed: {exc}")
        except AttachFailed as exc:
            return self._fail(name, f"attach failed: {exc}")
        except EraseFailed as exc:
            return self._fail(name, f"erase failed: {exc}")
        except FlashFailed as exc:
            return self._fail(name, f"flash failed: {exc}")
        except ResetFailed as exc:
            return self._fail(name, f"reset failed: {exc}")
        except DapflashError as exc:
            return self._fail(name, f"{name} failed: {exc}")

    def _require_selections(
        self,
        *,
        needs_file: bool,
    ) -> tuple[TargetMCU, int, FirmwareImage | None]:
        target = self.selection.target
        if self.state is GateState.NO_TARGET or target is None:
            raise MissingSelection(STATUS_SELECT_TARGET)
        index = self.selection.probe_index
        if index is None:
            raise MissingSelection(STATUS_SELECT_PROBE)
        image = self.selection.image
        if needs_file and (self.state is not GateState.TARGET_AND_FILE_SELECTED or image is None):
            raise MissingSelection(STATUS_SELECT_FILE)
        return target, index, image

    def _bin_options(self) -> BinOptions:
        if self.bin_override is not None:
            return self.bin_override
        if self.selection.target is not None:
            return self.selection.target.bin_defaults
        return BinOptions()

    def _fail(self, name: str, message: str) -> str:
        LOGGER.error("%s aborted: %s", name.capitalize(), message)
        return self._set_status(message, StatusLevel.ERROR)

    def _set_status(self, message: str, level: StatusLevel) -> str:
        self.selection.status = message
        self.selection.status_level = level
        return message
