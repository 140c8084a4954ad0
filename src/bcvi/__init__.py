"""bcvi: back-channel command relay between a remote shell and your workstation."""

__version__ = "0.1.0"
