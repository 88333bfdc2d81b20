"""Configuration loading and validation for thermolink YAML files."""

from __future__ import annotations

import codecs
import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from thermolink.core.errors import ConfigLoadError, ConfigValidationError
from thermolink.core.model import GattProfile, Operation

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class ThermoConfig:
    device_name: str
    profile: GattProfile
    scan_timeout_s: float
    connect_timeout_s: float
    encoding: str
    permissions: frozenset[Operation]


@dataclass(frozen=True)
class LoadedConfig:
    config: ThermoConfig
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("thermolink.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "thermolink/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: str) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def normalize_uuid(value: str, *, context: str) -> str:
    """Return the lowercase 128-bit form, expanding 16/32-bit short UUIDs."""
    normalized = str(value).strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    if len(normalized) == 4:
        return f"0000{normalized}{_BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{_BASE_UUID_SUFFIX}"
    return normalized


def _normalize_encoding(value: str) -> str:
    try:
        info = codecs.lookup(value)
    except LookupError as exc:
        raise ConfigValidationError(f"encoding '{value}' is not a known codec") from exc
    # bytes-to-bytes codecs (hex, base64, rot13) cannot decode to str
    if not getattr(info, "_is_text_encoding", True):
        raise ConfigValidationError(f"encoding '{value}' is not a text encoding")
    return info.name


def _build_config(doc: dict[str, Any]) -> ThermoConfig:
    return ThermoConfig(
        device_name=doc["device_name"],
        profile=GattProfile(
            service_uuid=normalize_uuid(doc["service_uuid"], context="service_uuid"),
            characteristic_uuid=normalize_uuid(doc["characteristic_uuid"], context="characteristic_uuid"),
            cccd_uuid=normalize_uuid(doc["cccd_uuid"], context="cccd_uuid"),
        ),
        scan_timeout_s=float(doc["scan_timeout_s"]),
        connect_timeout_s=float(doc["connect_timeout_s"]),
        encoding=_normalize_encoding(doc["encoding"]),
        permissions=frozenset(Operation(p) for p in doc["permissions"]),
    )


def _packaged_defaults_path() -> Traversable:
    return resources.files("thermolink.defaults").joinpath("thermolink.yaml")


def load_config(overrides: dict[str, Any] | None = None) -> LoadedConfig:
    """Merge packaged defaults, the user config file, and explicit overrides."""
    defaults_path = _packaged_defaults_path()
    doc = _read_yaml(defaults_path)
    _validate(doc, str(defaults_path))
    warnings: list[str] = []

    user_path = user_config_path()
    if user_path.is_file():
        user_doc = _read_yaml(user_path)
        _validate(user_doc, str(user_path))
        for key, value in sorted(user_doc.items()):
            if doc.get(key) != value:
                warning = f"User config overrides '{key}'"
                LOGGER.warning(warning)
                warnings.append(warning)
        doc.update(user_doc)

    explicit = {key: value for key, value in (overrides or {}).items() if value is not None}
    if explicit:
        _validate(explicit, "overrides")
        doc.update(explicit)

    return LoadedConfig(config=_build_config(doc), warnings=tuple(warnings))
