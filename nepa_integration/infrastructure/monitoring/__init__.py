"""Process-level logging configuration."""
