from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from dapflash.core.model import BinOptions, FirmwareFormat, ProbeInfo, TargetMCU

F103C8 = TargetMCU(id="stm32f103c8", name="STM32F103C8")
F103CB = TargetMCU(id="stm32f103cb", name="STM32F103CB")
TARGETS = {F103C8.id: F103C8, F103CB.id: F103CB}


class FakeBackend:
    """Records every call; ``fail[name]`` makes that method raise."""

    def __init__(self, probes: list[ProbeInfo] | None = None) -> None:
        if probes is None:
            probes = [ProbeInfo(identifier="CMSIS-DAP#1", unique_id="0001A")]
        self.probes = probes
        self.calls: list[tuple[Any, ...]] = []
        self.fail: dict[str, BaseException] = {}
        self.open_handles = 0
        self.open_sessions = 0

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise self.fail[name]

    def list_all(self) -> list[ProbeInfo]:
        self.calls.append(("list_all",))
        self._maybe_fail("list_all")
        return list(self.probes)

    def open(self, probe: ProbeInfo) -> str:
        self.calls.append(("open", probe.identifier))
        self._maybe_fail("open")
        self.open_handles += 1
        return f"handle:{probe.unique_id}"

    def close(self, handle: str) -> None:
        self.calls.append(("close", handle))
        self.open_handles -= 1

    def attach(self, handle: str, target: TargetMCU) -> dict[str, str]:
        self.calls.append(("attach", target.id))
        self._maybe_fail("attach")
        self.open_sessions += 1
        return {"handle": handle, "target": target.id}

    def detach(self, session: dict[str, str]) -> None:
        self.calls.append(("detach",))
        self.open_sessions -= 1

    def erase_all(self, session: dict[str, str]) -> None:
        self.calls.append(("erase_all",))
        self._maybe_fail("erase_all")

    def download_file(
        self,
        session: dict[str, str],
        path: Path,
        fmt: FirmwareFormat,
        bin_options: BinOptions,
    ) -> None:
        self.calls.append(("download_file", path.name, fmt, bin_options))
        self._maybe_fail("download_file")

    def reset_core(self, session: dict[str, str], core_index: int) -> None:
        self.calls.append(("reset_core", core_index))
        self._maybe_fail("reset_core")

    def hardware_calls(self) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] != "list_all"]

    def call_names(self) -> list[str]:
        return [call[0] for call in self.hardware_calls()]


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def firmware_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "fw"
    directory.mkdir()
    for name in ("firmware.bin", "app.elf", "app.hex", "notes.txt"):
        (directory / name).write_bytes(b"\x00\x01\x02\x03")
    return directory
