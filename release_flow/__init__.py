"""Build notification and release automation relay."""

__version__ = "0.1.0"
