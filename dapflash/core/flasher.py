"""Erase, download, and reset sequencing for a single flash request."""

from __future__ import annotations

import logging

from dapflash.core.errors import BackendError, FlashFailed, ResetFailed
from dapflash.core.model import FirmwareImage, FlashResult, Session
from dapflash.core.session import TargetSession

LOGGER = logging.getLogger(__name__)


class FlashOrchestrator:
    """Runs erase -> download -> reset once, in order, without retries.

    Erase and download failures raise and stop the sequence. A reset failure
    after a successful download is returned on the result instead, since the
    firmware is already written.
    """

    def __init__(self, sessions: TargetSession) -> None:
        self.sessions = sessions

    def flash(self, session: Session, image: FirmwareImage) -> FlashResult:
        LOGGER.info("Flashing %s (%s) to %s", image.path, image.format.value, session.target.id)
        self.sessions.erase(session)

        if not image.path.is_file():
            cause = FileNotFoundError(f"No such file: {image.path}")
            raise FlashFailed(str(cause), cause=cause)

        try:
            self.sessions.backend.download_file(
                session.native,
                image.path,
                image.format,
                image.bin_options,
            )
        except BackendError as exc:
            raise FlashFailed(str(exc), cause=exc.__cause__ or exc) from exc

        try:
            self.sessions.reset(session)
        except ResetFailed as exc:
            LOGGER.warning("Firmware written to %s but reset failed: %s", session.target.id, exc)
            return FlashResult(image=image, target=session.target, reset_error=exc)

        LOGGER.info("Flashed %s to %s", image.path.name, session.target.id)
        return FlashResult(image=image, target=session.target)
