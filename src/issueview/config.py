from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import ConfigError
from .events import EventEmitter
from .interfaces import ConfigurationChange

CONFIG_DEFAULT = "issueview.config.yaml"
DEFAULT_API_URL = "https://api.github.com"


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith("$"):
        return os.getenv(value[1:], value)
    return value


def _flatten(sections: Mapping[str, Any]) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for namespace, values in sections.items():
        if isinstance(values, Mapping):
            for key, value in values.items():
                flat[f"{namespace}.{key}"] = value
    return flat


class ConfigurationStore:
    """Namespaced configuration values with change notification.

    Values live as ``{namespace: {key: value}}``. Every mutation (``update``
    or ``reload``) publishes one :class:`ConfigurationChange` listing the
    dotted keys whose value actually changed; nothing is published when no
    value changed.
    """

    def __init__(self, sections: Mapping[str, Any] | None = None, path: Path | None = None):
        self._sections: dict[str, dict[str, Any]] = {}
        self._path = path
        self.on_did_change_configuration = EventEmitter("configuration changed")
        self._replace(sections or {})

    @classmethod
    def from_path(cls, path: str | Path) -> ConfigurationStore:
        p = Path(path)
        return cls(_read_yaml(p), path=p)

    @property
    def path(self) -> Path | None:
        return self._path

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        value = self._sections.get(namespace, {}).get(key, default)
        return _resolve_env_var(value)

    def section(self, namespace: str) -> dict[str, Any]:
        return dict(self._sections.get(namespace, {}))

    def update(self, namespace: str, key: str, value: Any) -> None:
        """Set (or with ``value=None`` remove) a single key."""
        before = _flatten(self._sections)
        values = self._sections.setdefault(namespace, {})
        if value is None:
            values.pop(key, None)
        else:
            values[key] = value
        self._publish_diff(before)

    def reload(self) -> None:
        if self._path is None:
            raise ConfigError("configuration store was not loaded from a file")
        before = _flatten(self._sections)
        self._replace(_read_yaml(self._path))
        self._publish_diff(before)

    def _replace(self, sections: Mapping[str, Any]) -> None:
        self._sections = {
            str(ns): dict(values)
            for ns, values in sections.items()
            if isinstance(values, Mapping)
        }

    def _publish_diff(self, before: dict[str, Any]) -> None:
        after = _flatten(self._sections)
        changed = {k for k in before.keys() | after.keys() if before.get(k) != after.get(k)}
        if changed:
            self.on_did_change_configuration.publish(ConfigurationChange(changed))


def _read_yaml(p: Path) -> dict[str, Any]:
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration root must be a mapping: {p}")
    return cast(dict[str, Any], raw)


@dataclass
class ViewCacheConfig:
    source_file: Path | None
    github_repo: str | None
    # remote name -> owner/repo; the first entry serves issues and milestones
    github_remotes: dict[str, str] = field(default_factory=dict)
    github_api_url: str = DEFAULT_API_URL
    github_token_env: str = "GITHUB_TOKEN"
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    store: ConfigurationStore = field(default_factory=ConfigurationStore)

    @property
    def remotes(self) -> dict[str, str]:
        if self.github_remotes:
            return dict(self.github_remotes)
        if self.github_repo:
            return {"origin": self.github_repo}
        return {}

    def token(self) -> str | None:
        return os.getenv(self.github_token_env) or None


def load_config(path: str | Path) -> ViewCacheConfig:
    store = ConfigurationStore.from_path(path)
    gh = store.section("github")
    logging_config = store.section("logging")
    remotes_raw = gh.get("remotes") or {}
    if not isinstance(remotes_raw, dict):
        raise ConfigError("github.remotes must be a mapping of remote name to owner/repo")
    # The issues section stays in the store, where the view selector reads it live
    for key in ("ignoreMilestones", "excludeFromDate"):
        value = store.get("issues", key)
        if value is not None and not isinstance(value, list):
            raise ConfigError(f"issues.{key} must be a list")
    return ViewCacheConfig(
        source_file=store.path,
        github_repo=_resolve_env_var(gh.get("repo")),
        github_remotes={str(k): str(_resolve_env_var(v)) for k, v in remotes_raw.items()},
        github_api_url=str(gh.get("api_url") or DEFAULT_API_URL),
        github_token_env=str(gh.get("token_env") or "GITHUB_TOKEN"),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "INFO")),
        store=store,
    )


__all__ = [
    "CONFIG_DEFAULT",
    "ConfigError",
    "ConfigurationStore",
    "ViewCacheConfig",
    "load_config",
]
