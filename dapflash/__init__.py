"""Flash STM32 firmware through a USB debug probe."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
