"""JSON schemas for dapflash configuration files."""
