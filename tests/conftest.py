import os

# Keep developer environment from leaking into installer and namespace selection
os.environ.pop("HUBBLE_CLI_MODE", None)
os.environ.pop("HUBBLE_NAMESPACE", None)

from tests.fixtures import *  # noqa: E402,F401,F403
