"""Configuration helpers for the extension registry."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

from .exceptions import ConfigurationError
from .registry import FailureMode, Policy

DEFAULT_CONFIG_FILE = Path.home() / ".modhooks" / "registry.json"


@dataclass(slots=True)
class PointConfig:
    """Declarative definition of one extension point."""

    name: str
    policy: Policy = Policy.ACCUMULATE
    signature: Optional[Tuple[str, ...]] = None
    failure_mode: Optional[FailureMode] = None
    description: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PointConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError("Each extension point entry must be a mapping.")
        name = str(data.get("name") or "").strip()
        if not name:
            raise ConfigurationError("Extension point entries require a non-empty 'name'.")
        signature = data.get("signature")
        if signature is not None:
            if isinstance(signature, str) or not isinstance(signature, (list, tuple)):
                raise ConfigurationError(f"Extension point '{name}' must list its signature as an array.")
            signature = tuple(str(param) for param in signature)
        try:
            policy = Policy.coerce(data.get("policy", Policy.ACCUMULATE))
            failure_mode = data.get("failure_mode")
            failure_mode = FailureMode.coerce(failure_mode) if failure_mode is not None else None
        except ValueError as exc:
            raise ConfigurationError(f"Extension point '{name}': {exc}") from exc
        return cls(
            name=name,
            policy=policy,
            signature=signature,
            failure_mode=failure_mode,
            description=str(data.get("description", "") or ""),
        )

    def to_mapping(self) -> MutableMapping[str, object]:
        payload: Dict[str, object] = {"name": self.name, "policy": self.policy.value}
        if self.signature is not None:
            payload["signature"] = list(self.signature)
        if self.failure_mode is not None:
            payload["failure_mode"] = self.failure_mode.value
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class RegistryConfig:
    """Extension points to create at start-up and the default failure handling."""

    failure_mode: FailureMode = FailureMode.ISOLATE
    points: List[PointConfig] = field(default_factory=list)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RegistryConfig":
        env = env or os.environ
        source = env.get("MODHOOKS_CONFIG")
        config = cls.load(Path(source).expanduser()) if source else cls()
        mode = env.get("MODHOOKS_FAILURE_MODE")
        if mode:
            try:
                config.failure_mode = FailureMode.coerce(mode)
            except ValueError as exc:
                raise ConfigurationError(f"MODHOOKS_FAILURE_MODE: {exc}") from exc
        return config

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RegistryConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError("Registry configuration root must be a mapping.")
        try:
            failure_mode = FailureMode.coerce(data.get("failure_mode") or FailureMode.ISOLATE)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        raw_points = data.get("points", []) or []
        if isinstance(raw_points, (str, bytes)) or not isinstance(raw_points, (list, tuple)):
            raise ConfigurationError("Registry configuration 'points' must be an array.")
        points = [PointConfig.from_mapping(entry) for entry in raw_points]
        seen = set()
        for point in points:
            if point.name in seen:
                raise ConfigurationError(f"Extension point '{point.name}' is declared twice.")
            seen.add(point.name)
        return cls(failure_mode=failure_mode, points=points)

    def to_mapping(self) -> MutableMapping[str, object]:
        return {
            "failure_mode": self.failure_mode.value,
            "points": [point.to_mapping() for point in self.points],
        }

    def dump(self, destination: Path | None = None) -> None:
        destination = destination or DEFAULT_CONFIG_FILE
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(json.dumps(self.to_mapping(), indent=2))

    @classmethod
    def load(cls, source: Path | str | None = None) -> "RegistryConfig":
        source = Path(source) if source is not None else DEFAULT_CONFIG_FILE
        if not source.exists():
            raise FileNotFoundError(f"Configuration file not found: {source}")
        text = source.read_text(encoding="utf8")
        if source.suffix.lower() in {".yaml", ".yml"}:
            import yaml

            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {source}: {exc}") from exc
        else:
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid JSON in {source}: {exc}") from exc
        return cls.from_mapping(data or {})


__all__ = ["DEFAULT_CONFIG_FILE", "PointConfig", "RegistryConfig"]
