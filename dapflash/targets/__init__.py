"""Packaged target MCU definitions."""
