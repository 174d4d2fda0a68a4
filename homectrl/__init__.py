"""home-ctrl — authenticated key-value service for home automation."""

__version__ = "0.1.0"
