"""toolproxy - a Model Context Protocol gateway for pluggable tool services."""

__version__ = "0.1.0"
