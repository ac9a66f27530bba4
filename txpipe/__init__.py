"""Request instrumentation pipeline for HTTP services."""

__version__ = "1.0.0"
