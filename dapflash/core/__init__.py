"""Core selection, session, and flashing logic."""
