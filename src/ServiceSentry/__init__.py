"""ServiceSentry: audit and repair write access on Windows service binaries."""

__version__ = "1.0.0"
