"""hubblectl - lifecycle and port-forward management for Hubble."""

__version__ = "0.1.0"
