"""Debug probe enumeration and acquisition."""

from __future__ import annotations

import logging
from typing import Any

from dapflash.backends.base import ProbeBackend
from dapflash.core.errors import BackendError, ProbeNotFound, ProbeOpenFailed
from dapflash.core.model import ProbeInfo

LOGGER = logging.getLogger(__name__)


class ProbeRegistry:
    """Lists probes and opens them by index into the most recent listing.

    Indices are only meaningful against the list returned by the latest
    ``list()`` call; ``open`` never re-enumerates behind the caller's back.
    """

    def __init__(self, backend: ProbeBackend) -> None:
        self.backend = backend
        self._probes: tuple[ProbeInfo, ...] = ()

    @property
    def probes(self) -> tuple[ProbeInfo, ...]:
        return self._probes

    def list(self) -> tuple[ProbeInfo, ...]:
        # A failed enumeration must not leave the previous list resolvable.
        self._probes = ()
        self._probes = tuple(self.backend.list_all())
        LOGGER.debug("Enumerated %d probe(s)", len(self._probes))
        return self._probes

    def identifiers(self) -> list[str]:
        return [probe.identifier for probe in self._probes]

    def index_of(self, identifier: str) -> int | None:
        for index, probe in enumerate(self._probes):
            if identifier in (probe.identifier, probe.unique_id):
                return index
        return None

    def open(self, index: int) -> tuple[ProbeInfo, Any]:
        if index < 0 or index >= len(self._probes):
            raise ProbeNotFound(f"No probe at index {index}; refresh the probe list")
        probe = self._probes[index]
        try:
            handle = self.backend.open(probe)
        except BackendError as exc:
            raise ProbeOpenFailed(f"Could not open probe {probe.identifier}: {exc}") from exc
        LOGGER.debug("Opened probe %s", probe.identifier)
        return probe, handle

    def release(self, handle: Any) -> None:
        self.backend.close(handle)
