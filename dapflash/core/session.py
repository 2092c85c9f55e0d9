"""Session attachment and session-scoped erase/reset."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from dapflash.backends.base import ProbeBackend
from dapflash.core.errors import AttachFailed, BackendError, EraseFailed, ResetFailed
from dapflash.core.model import ProbeInfo, Session, TargetMCU
from dapflash.core.probes import ProbeRegistry

LOGGER = logging.getLogger(__name__)

PRIMARY_CORE = 0


class TargetSession:
    def __init__(self, backend: ProbeBackend) -> None:
        self.backend = backend

    def attach(self, probe: ProbeInfo, handle: Any, target: TargetMCU) -> Session:
        try:
            native = self.backend.attach(handle, target)
        except BackendError as exc:
            raise AttachFailed(f"Could not attach to target {target.id}: {exc}") from exc
        LOGGER.debug("Attached %s to %s", probe.identifier, target.id)
        return Session(probe=probe, target=target, handle=handle, native=native)

    def erase(self, session: Session) -> None:
        try:
            self.backend.erase_all(session.native)
        except BackendError as exc:
            raise EraseFailed(f"Erase of {session.target.id} failed: {exc}") from exc

    def reset(self, session: Session) -> None:
        try:
            self.backend.reset_core(session.native, PRIMARY_CORE)
        except BackendError as exc:
            raise ResetFailed(f"Reset of {session.target.id} core {PRIMARY_CORE} failed: {exc}") from exc

    def release(self, session: Session) -> None:
        self.backend.detach(session.native)

    @contextmanager
    def scope(self, registry: ProbeRegistry, index: int, target: TargetMCU) -> Iterator[Session]:
        """Open the probe, attach, and release both on every exit path."""
        probe, handle = registry.open(index)
        try:
            session = self.attach(probe, handle, target)
            try:
                yield session
            finally:
                self.release(session)
        finally:
            registry.release(handle)
