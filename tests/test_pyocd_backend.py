from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

pytest.importorskip("pyocd")

from pyocd.core import exceptions as pyocd_exceptions  # noqa: E402
from pyocd.core import session as pyocd_session  # noqa: E402
from pyocd.flash import eraser as pyocd_eraser  # noqa: E402
from pyocd.flash import file_programmer as pyocd_programmer  # noqa: E402
from pyocd.probe import aggregator as pyocd_aggregator  # noqa: E402

from conftest import F103C8, TARGETS  # noqa: E402
from dapflash.backends.pyocd_backend import ProbeLink, PyOCDBackend  # noqa: E402
from dapflash.core.errors import BackendError, ProbeNotFound, ProbeOpenFailed  # noqa: E402
from dapflash.core.gate import SelectionGate  # noqa: E402
from dapflash.core.model import (  # noqa: E402
    BinOptions,
    ConnectOptions,
    FirmwareFormat,
    ProbeInfo,
    StatusLevel,
    TargetMCU,
)


class FakeProbe:
    def __init__(self, unique_id: str = "0001A", open_error: Exception | None = None) -> None:
        self.unique_id = unique_id
        self.description = "CMSIS-DAP#1"
        self.vendor_name = "ARM"
        self.product_name = "DAPLink"
        self.open_error = open_error
        self.events: list[str] = []

    def open(self) -> None:
        self.events.append("open")
        if self.open_error is not None:
            raise self.open_error

    def close(self) -> None:
        self.events.append("close")


def _patch_probes(monkeypatch: pytest.MonkeyPatch, probes: list[FakeProbe]) -> None:
    def get_all_connected_probes(unique_id: str | None = None, is_explicit: bool = False) -> list[FakeProbe]:
        if unique_id is None:
            return list(probes)
        return [p for p in probes if p.unique_id == unique_id]

    monkeypatch.setattr(
        pyocd_aggregator.DebugProbeAggregator,
        "get_all_connected_probes",
        staticmethod(get_all_connected_probes),
    )


def test_list_all_maps_probe_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_probes(monkeypatch, [FakeProbe()])

    probes = PyOCDBackend().list_all()

    assert probes == [ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A", vendor="ARM", product="DAPLink")]


def test_open_unplugged_probe_is_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_probes(monkeypatch, [])

    with pytest.raises(ProbeNotFound):
        PyOCDBackend().open(ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A"))


def test_open_rejected_by_transport(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_probes(monkeypatch, [FakeProbe(open_error=pyocd_exceptions.ProbeError("busy"))])

    with pytest.raises(ProbeOpenFailed):
        PyOCDBackend().open(ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A"))


def test_failed_open_closes_device_again(monkeypatch: pytest.MonkeyPatch) -> None:
    device = FakeProbe(open_error=pyocd_exceptions.ProbeError("claimed by another process"))
    _patch_probes(monkeypatch, [device])

    with pytest.raises(ProbeOpenFailed):
        PyOCDBackend().open(ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A"))

    assert device.events == ["open", "close"]


def test_close_is_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    probe = FakeProbe()
    _patch_probes(monkeypatch, [probe])
    backend = PyOCDBackend()

    link = backend.open(ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A"))
    backend.close(link)
    backend.close(link)

    assert probe.events == ["open", "close"]


def test_attach_passes_target_options(monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[dict[str, Any]] = []

    class FakeSession:
        def __init__(self, probe: Any, auto_open: bool = True, options: dict[str, Any] | None = None) -> None:
            created.append({"probe": probe, "options": options})

        def open(self) -> None:
            pass

    monkeypatch.setattr(pyocd_session, "Session", FakeSession)
    probe = FakeProbe()
    target = TargetMCU(
        id="stm32f103c8",
        name="STM32F103C8",
        connect=ConnectOptions(frequency_hz=4_000_000, connect_mode="halt"),
    )

    PyOCDBackend().attach(ProbeLink(probe=probe, unique_id="0001A"), target)

    assert created[0]["probe"] is probe
    assert created[0]["options"] == {
        "target_override": "stm32f103c8",
        "frequency": 4_000_000,
        "connect_mode": "halt",
    }
    assert probe.events == ["close"]


def test_attach_failure_closes_session(monkeypatch: pytest.MonkeyPatch) -> None:
    closed: list[bool] = []

    class FailingSession:
        def __init__(self, probe: Any, auto_open: bool = True, options: dict[str, Any] | None = None) -> None:
            pass

        def open(self) -> None:
            raise pyocd_exceptions.TargetSupportError("Target type stm32f103c8 not recognized")

        def close(self) -> None:
            closed.append(True)

    monkeypatch.setattr(pyocd_session, "Session", FailingSession)

    with pytest.raises(BackendError):
        PyOCDBackend().attach(ProbeLink(probe=FakeProbe(), unique_id="0001A"), F103C8)
    assert closed == [True]


def test_erase_all_uses_chip_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    modes: list[Any] = []

    class FakeEraser:
        Mode = pyocd_eraser.FlashEraser.Mode

        def __init__(self, session: Any, mode: Any) -> None:
            modes.append(mode)

        def erase(self, addresses: Any = None) -> None:
            pass

    monkeypatch.setattr(pyocd_eraser, "FlashEraser", FakeEraser)

    PyOCDBackend().erase_all(object())

    assert modes == [pyocd_eraser.FlashEraser.Mode.CHIP]


@pytest.mark.parametrize(
    ("fmt", "options", "expected"),
    [
        (FirmwareFormat.BIN, BinOptions(), {"file_format": "bin", "skip": 0}),
        (
            FirmwareFormat.BIN,
            BinOptions(base_address=0x08002000, skip=8),
            {"file_format": "bin", "skip": 8, "base_address": 0x08002000},
        ),
        (FirmwareFormat.HEX, BinOptions(), {"file_format": "hex"}),
        (FirmwareFormat.ELF, BinOptions(base_address=0x1), {"file_format": "elf"}),
    ],
)
def test_download_file_dispatch(
    monkeypatch: pytest.MonkeyPatch,
    fmt: FirmwareFormat,
    options: BinOptions,
    expected: dict[str, Any],
) -> None:
    programmed: list[tuple[str, dict[str, Any]]] = []

    class FakeProgrammer:
        def __init__(self, session: Any, **kwargs: Any) -> None:
            assert kwargs["no_reset"] is True

        def program(self, path: str, **kwargs: Any) -> None:
            programmed.append((path, kwargs))

    monkeypatch.setattr(pyocd_programmer, "FileProgrammer", FakeProgrammer)

    PyOCDBackend().download_file(object(), Path("fw/image"), fmt, options)

    assert programmed == [(str(Path("fw/image")), expected)]


def test_download_file_failure_is_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingProgrammer:
        def __init__(self, session: Any, **kwargs: Any) -> None:
            pass

        def program(self, path: str, **kwargs: Any) -> None:
            raise pyocd_exceptions.FlashProgramFailure("write rejected")

    monkeypatch.setattr(pyocd_programmer, "FileProgrammer", FailingProgrammer)

    with pytest.raises(BackendError) as exc:
        PyOCDBackend().download_file(object(), Path("app.hex"), FirmwareFormat.HEX, BinOptions())
    assert isinstance(exc.value.__cause__, pyocd_exceptions.FlashProgramFailure)


def test_reset_core_targets_index(monkeypatch: pytest.MonkeyPatch) -> None:
    resets: list[int] = []

    class FakeCore:
        def __init__(self, index: int) -> None:
            self.index = index

        def reset(self) -> None:
            resets.append(self.index)

    class FakeTarget:
        cores = {0: FakeCore(0), 1: FakeCore(1)}

    class FakeNativeSession:
        target = FakeTarget()

    PyOCDBackend().reset_core(FakeNativeSession(), 0)
    assert resets == [0]


def test_reset_missing_core_is_backend_error() -> None:
    class FakeNativeSession:
        class target:
            cores: dict[int, Any] = {}

    with pytest.raises(BackendError):
        PyOCDBackend().reset_core(FakeNativeSession(), 0)


class FileOnlyBackend(PyOCDBackend):
    """Real ``download_file`` with every other hardware step recorded."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    def list_all(self) -> list[ProbeInfo]:
        return [ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A")]

    def open(self, probe: ProbeInfo) -> ProbeLink:
        self.calls.append("open")
        return ProbeLink(probe=FakeProbe(), unique_id=probe.unique_id)

    def close(self, handle: ProbeLink) -> None:
        self.calls.append("close")

    def attach(self, handle: ProbeLink, target: TargetMCU) -> Any:
        self.calls.append("attach")
        return MagicMock()

    def detach(self, session: Any) -> None:
        self.calls.append("detach")

    def erase_all(self, session: Any) -> None:
        self.calls.append("erase_all")

    def reset_core(self, session: Any, core_index: int) -> None:
        self.calls.append("reset_core")


class StubLoader:
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    def add_data(self, address: int, data: Any) -> None:
        pass

    def commit(self) -> None:
        pass


@pytest.mark.parametrize(
    ("name", "content"),
    [
        ("app.hex", b":zz-not-a-hex-record\n"),
        ("app.elf", b"\x7fELF garbage"),
    ],
)
def test_corrupt_image_is_flash_failed_status(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    name: str,
    content: bytes,
) -> None:
    monkeypatch.setattr(pyocd_programmer, "MemoryLoader", StubLoader, raising=False)
    monkeypatch.setattr(pyocd_programmer, "FlashLoader", StubLoader, raising=False)
    image = tmp_path / name
    image.write_bytes(content)
    backend = FileOnlyBackend()
    gate = SelectionGate(backend, TARGETS)
    gate.on_target_chosen(F103C8)
    gate.on_file_dropped_or_selected(image)

    status = gate.on_flash()

    assert status.startswith("flash failed:")
    assert name in status
    assert gate.selection.status_level is StatusLevel.ERROR
    assert "reset_core" not in backend.calls
    assert backend.calls[-2:] == ["detach", "close"]


def test_download_file_maps_parser_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    class ParserError(Exception):
        pass

    class CorruptImageProgrammer:
        def __init__(self, session: Any, **kwargs: Any) -> None:
            pass

        def program(self, path: str, **kwargs: Any) -> None:
            raise ParserError("bad record")

    monkeypatch.setattr(pyocd_programmer, "FileProgrammer", CorruptImageProgrammer)

    with pytest.raises(BackendError) as exc:
        PyOCDBackend().download_file(object(), Path("app.hex"), FirmwareFormat.HEX, BinOptions())
    assert isinstance(exc.value.__cause__, ParserError)
