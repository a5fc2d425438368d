"""CLI command modules.

Commands:
- enable: Install or update Hubble Relay and UI
- disable: Remove Hubble and its persisted values
- port-forward: Forward the relay to a local port
- ui: Forward the UI to a local port and open a browser
"""

from .hubble import disable, enable, port_forward, ui

__all__ = ["disable", "enable", "port_forward", "ui"]
