"""Probe-and-flash library backends."""
