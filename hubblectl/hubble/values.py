"""Layered configuration merging.

The effective values tree for an invocation is built from an ordered list of
value providers, each producing a partial tree. Providers are folded left to
right with a deep merge, so later providers win on key collisions:

    defaults < persisted values < value files < CLI flags
             < --helm-set-file < --helm-set-string < --helm-set

Inline overrides follow Helm's ``--set`` syntax:

    hubble.relay.replicas=2,hubble.ui.enabled=true
    hubble.relay.tolerations[0].operator=Exists
    hubble.relay.extraArgs={--debug,--sort-buffer-len-max=200}
    hubble.relay.nodeSelector.kubernetes\\.io/os=linux
"""

from __future__ import annotations

import copy
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]
from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants

from .errors import ConfigError
from .parameters import Parameters

_INT_PATTERN = re.compile(r"^-?(0|[1-9][0-9]*)$")
_INDEX_PATTERN = re.compile(r"^(.*?)\[(\d+)\]$")

SetMode = Literal["typed", "string", "file"]

# Value paths driven by the dedicated CLI flags
FLAG_VALUE_PATHS: dict[str, tuple[str, ...]] = {
    "relay": ("hubble.relay.enabled",),
    "relay_image": ("hubble.relay.image.repository",),
    "relay_version": ("hubble.relay.image.tag",),
    "ui": ("hubble.ui.enabled",),
    "ui_image": ("hubble.ui.frontend.image.repository",),
    "ui_backend_image": ("hubble.ui.backend.image.repository",),
    "ui_version": ("hubble.ui.frontend.image.tag", "hubble.ui.backend.image.tag"),
}


# =============================================================================
# Tree helpers
# =============================================================================


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested mappings merge recursively, any other value replaces, and a
    ``None`` override deletes the key.
    """
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = deep_merge(result[key], value)
        elif isinstance(value, Mapping):
            result[key] = deep_merge({}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def get_path(tree: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Look up a dotted path in a nested mapping."""
    node: Any = tree
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node


def set_path(tree: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted path in a nested dict, creating intermediate maps."""
    parts = path.split(".")
    node = tree
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[parts[-1]] = value


class ResolvedValues(Mapping[str, Any]):
    """Immutable view over a merged values tree."""

    def __init__(self, tree: Mapping[str, Any] | None = None) -> None:
        self._tree: dict[str, Any] = copy.deepcopy(dict(tree or {}))

    def __getitem__(self, key: str) -> Any:
        return copy.deepcopy(self._tree[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._tree)

    def __len__(self) -> int:
        return len(self._tree)

    def __repr__(self) -> str:
        return f"ResolvedValues(keys={sorted(self._tree)})"

    def get(self, path: str, default: Any = None) -> Any:  # type: ignore[override]
        """Look up a dotted path (``hubble.relay.enabled``)."""
        return copy.deepcopy(get_path(self._tree, path, default))

    def as_dict(self) -> dict[str, Any]:
        """Return a deep copy of the underlying tree."""
        return copy.deepcopy(self._tree)

    def merged(self, overlay: Mapping[str, Any]) -> ResolvedValues:
        """Return new values with ``overlay`` deep-merged on top."""
        return ResolvedValues(deep_merge(self._tree, overlay))

    def to_yaml(self) -> str:
        """Serialize with sorted keys; identical trees give identical text."""
        return dump_values(self._tree)


def dump_values(tree: Mapping[str, Any]) -> str:
    return yaml.safe_dump(dict(tree), sort_keys=True, default_flow_style=False)


# =============================================================================
# --set parsing
# =============================================================================


def _split_unescaped(text: str, sep: str, *, respect_braces: bool = False) -> list[str]:
    """Split on ``sep`` unless escaped with a backslash (or inside ``{}``)."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    escaped = False
    for char in text:
        if escaped:
            current.append("\\" + char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif respect_braces and char == "{":
            depth += 1
            current.append(char)
        elif respect_braces and char == "}":
            depth = max(depth - 1, 0)
            current.append(char)
        elif char == sep and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if escaped:
        current.append("\\")
    parts.append("".join(current))
    return parts


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def _typed(raw: str, mode: SetMode) -> Any:
    value = _unescape(raw)
    if mode == "string":
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None
    if _INT_PATTERN.match(value):
        return int(value)
    return value


def _parse_key(key: str, source: str) -> list[str | int]:
    segments: list[str | int] = []
    for part in _split_unescaped(key, "."):
        indexes: list[int] = []
        match = _INDEX_PATTERN.match(part)
        while match:
            indexes.insert(0, int(match.group(2)))
            part = match.group(1)
            match = _INDEX_PATTERN.match(part)
        name = _unescape(part).strip()
        if not name:
            raise ConfigError(
                f"Malformed override {source!r}",
                details=f"Key {key!r} contains an empty path segment.",
            )
        segments.append(name)
        segments.extend(indexes)
    return segments


def _assign(
    tree: dict[str, Any], segments: list[str | int], value: Any, source: str
) -> None:
    node: Any = tree
    for position, segment in enumerate(segments):
        last = position == len(segments) - 1
        following = None if last else segments[position + 1]
        empty: Any = [] if isinstance(following, int) else {}

        # An earlier assignment may already have made this node the other shape
        expected = list if isinstance(segment, int) else dict
        if not isinstance(node, expected):
            shape = "list" if isinstance(node, list) else "map"
            raise ConfigError(
                f"Malformed override {source!r}",
                details=(
                    f"{_format_path(segments[:position])} is already a {shape} "
                    f"and cannot take the key {segment!r}."
                ),
            )

        if isinstance(segment, int):
            while len(node) <= segment:
                node.append(None)
            if last:
                node[segment] = value
            else:
                if not isinstance(node[segment], list | dict):
                    node[segment] = empty
                node = node[segment]
        else:
            if last:
                node[segment] = value
            else:
                if not isinstance(node.get(segment), list | dict):
                    node[segment] = empty
                node = node[segment]


def _format_path(segments: list[str | int]) -> str:
    path = ""
    for segment in segments:
        path += f"[{segment}]" if isinstance(segment, int) else f".{segment}"
    return path.lstrip(".")


def parse_set_values(
    entries: Sequence[str],
    mode: SetMode = "typed",
    tree: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Parse ``--set`` style entries into a nested tree.

    Entries are applied in order, so a later entry wins over an earlier one.

    Args:
        entries: Raw option values (``key=value[,key=value...]``)
        mode: "typed" for --helm-set, "string" for --helm-set-string,
              "file" for --helm-set-file (values are file paths)
        tree: Existing tree to apply onto (mutated)

    Raises:
        ConfigError: On a malformed entry or an unreadable file
    """
    result: dict[str, Any] = {} if tree is None else tree
    for entry in entries:
        for assignment in _split_unescaped(entry, ",", respect_braces=True):
            if not assignment.strip():
                continue
            pieces = _split_unescaped(assignment, "=")
            if len(pieces) < 2:
                raise ConfigError(
                    f"Malformed override {assignment!r}",
                    details="Overrides must have the form key=value.",
                )
            key, raw = pieces[0], "=".join(pieces[1:])
            segments = _parse_key(key, assignment)

            value: Any
            if mode == "file":
                value = _read_set_file(_unescape(raw), key)
            elif raw.startswith("{") and raw.endswith("}"):
                inner = raw[1:-1]
                value = (
                    [_typed(item, mode) for item in _split_unescaped(inner, ",")]
                    if inner
                    else []
                )
            else:
                value = _typed(raw, mode)
            _assign(result, segments, value, assignment)
    return result


def _read_set_file(path: str, key: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            f"Cannot read file for --helm-set-file {key}",
            details=f"{path}: {e.strerror or e}",
        ) from e


def load_values_file(path: Path) -> dict[str, Any]:
    """Load one YAML values file.

    Raises:
        ConfigError: If the file is unreadable, not YAML, or not a mapping
    """
    try:
        content = Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            f"Cannot read values file {path}", details=str(e.strerror or e)
        ) from e
    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing values file {path}", details=str(e)) from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(
            f"Invalid values file {path}",
            details=f"Top level must be a mapping, got {type(loaded).__name__}.",
        )
    return loaded


# =============================================================================
# Value providers
# =============================================================================


class ValueProvider(ABC):
    """Produces one partial values tree."""

    name: str = "provider"

    @abstractmethod
    def provide(self) -> dict[str, Any]:
        """Return the partial tree contributed by this source."""
        ...


class DefaultsProvider(ValueProvider):
    name = "defaults"

    def __init__(self, namespace: str, constants: HubbleConstants = DEFAULT_CONSTANTS):
        self.namespace = namespace
        self.constants = constants

    def provide(self) -> dict[str, Any]:
        c = self.constants
        return {
            "hubble": {
                "relay": {
                    "enabled": True,
                    "replicas": 1,
                    "image": {"repository": c.RELAY_IMAGE, "tag": c.RELAY_VERSION},
                    "listenPort": c.RELAY_LISTEN_PORT,
                    "servicePort": c.RELAY_SERVICE_PORT,
                    "peerService": f"hubble-peer.{self.namespace}.svc.cluster.local:443",
                },
                "ui": {
                    "enabled": False,
                    "replicas": 1,
                    "frontend": {"image": {"repository": c.UI_IMAGE, "tag": c.UI_VERSION}},
                    "backend": {
                        "image": {"repository": c.UI_BACKEND_IMAGE, "tag": c.UI_VERSION}
                    },
                    "servicePort": c.UI_SERVICE_PORT,
                },
                "tls": {"enabled": True},
            }
        }


class PersistedValuesProvider(ValueProvider):
    name = "persisted"

    def __init__(self, values: Mapping[str, Any] | None):
        self.values = values

    def provide(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.values or {}))


class ValueFilesProvider(ValueProvider):
    name = "value-files"

    def __init__(self, paths: Sequence[Path]):
        self.paths = paths

    def provide(self) -> dict[str, Any]:
        tree: dict[str, Any] = {}
        for path in self.paths:
            tree = deep_merge(tree, load_values_file(path))
        return tree


class FlagValuesProvider(ValueProvider):
    name = "flags"

    def __init__(self, params: Parameters):
        self.params = params

    def provide(self) -> dict[str, Any]:
        tree: dict[str, Any] = {}
        for field_name, paths in FLAG_VALUE_PATHS.items():
            value = getattr(self.params, field_name)
            if value is None:
                continue
            for path in paths:
                set_path(tree, path, value)
        return tree


class SetValuesProvider(ValueProvider):
    def __init__(self, entries: Sequence[str], mode: SetMode):
        self.entries = entries
        self.mode = mode
        self.name = {"typed": "helm-set", "string": "helm-set-string", "file": "helm-set-file"}[mode]

    def provide(self) -> dict[str, Any]:
        return parse_set_values(self.entries, self.mode)


# =============================================================================
# Merger
# =============================================================================


class ConfigMerger:
    """Resolves the effective values tree from all configuration sources."""

    def __init__(self, constants: HubbleConstants = DEFAULT_CONSTANTS) -> None:
        self.constants = constants

    def providers(
        self,
        params: Parameters,
        prior_values: Mapping[str, Any] | None,
        namespace: str,
    ) -> list[ValueProvider]:
        """Value providers in ascending precedence order."""
        return [
            DefaultsProvider(namespace, self.constants),
            PersistedValuesProvider(prior_values),
            ValueFilesProvider(params.helm_values),
            FlagValuesProvider(params),
            SetValuesProvider(params.helm_set_file, "file"),
            SetValuesProvider(params.helm_set_string, "string"),
            SetValuesProvider(params.helm_set, "typed"),
        ]

    def resolve(
        self,
        params: Parameters,
        prior_values: Mapping[str, Any] | None = None,
        *,
        namespace: str | None = None,
    ) -> ResolvedValues:
        """Fold all providers into the effective values.

        Raises:
            ConfigError: If any source is unreadable or malformed
        """
        namespace = namespace or params.namespace or self.constants.DEFAULT_NAMESPACE
        tree: dict[str, Any] = {}
        for provider in self.providers(params, prior_values, namespace):
            partial = provider.provide()
            if partial:
                logger.debug(f"Merging values from {provider.name}")
                tree = deep_merge(tree, partial)
        return ResolvedValues(tree)
