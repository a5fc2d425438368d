"""Shell command abstractions for Helm operations.

Usage:
    from hubblectl.infra.shell_commands import CommandRunner, HelmCommands

    helm = HelmCommands(CommandRunner())
    result = helm.uninstall("hubble", "kube-system")
"""

from .helm import HelmCommands, is_release_not_found
from .runner import CommandRunner
from .types import CommandResult

__all__ = [
    "CommandResult",
    "CommandRunner",
    "HelmCommands",
    "is_release_not_found",
]
