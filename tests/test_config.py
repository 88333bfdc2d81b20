from __future__ import annotations

from pathlib import Path

import pytest

from thermolink.core.config import load_config, normalize_uuid
from thermolink.core.errors import ConfigValidationError
from thermolink.core.model import Operation


def _write_config(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_packaged_defaults(isolated_config: Path) -> None:
    loaded = load_config()
    config = loaded.config
    assert config.device_name == "ESP32-Thermo"
    assert config.profile.service_uuid == "12345678-1234-1234-1234-1234567890ab"
    assert config.profile.characteristic_uuid == "abcd1234-ab12-cd34-ef56-abcdef123456"
    assert config.profile.cccd_uuid == "00002902-0000-1000-8000-00805f9b34fb"
    assert config.scan_timeout_s == 10.0
    assert config.encoding == "utf-8"
    assert config.permissions == frozenset(Operation)
    assert loaded.warnings == ()


def test_user_config_overrides_defaults(isolated_config: Path) -> None:
    _write_config(
        isolated_config,
        """
device_name: Garage-Thermo
scan_timeout_s: 4.5
permissions: [scan, connect]
""",
    )

    loaded = load_config()
    assert loaded.config.device_name == "Garage-Thermo"
    assert loaded.config.scan_timeout_s == 4.5
    assert loaded.config.permissions == {Operation.SCAN, Operation.CONNECT}
    assert any("device_name" in warning for warning in loaded.warnings)


def test_explicit_overrides_win_and_none_is_ignored(isolated_config: Path) -> None:
    _write_config(isolated_config, "device_name: Garage-Thermo\n")

    loaded = load_config({"device_name": "Cli-Thermo", "scan_timeout_s": None})
    assert loaded.config.device_name == "Cli-Thermo"
    assert loaded.config.scan_timeout_s == 10.0


def test_unknown_key_rejected(isolated_config: Path) -> None:
    _write_config(isolated_config, "mtu: 247\n")

    with pytest.raises(ConfigValidationError):
        load_config()


def test_invalid_uuid_rejected(isolated_config: Path) -> None:
    _write_config(isolated_config, 'service_uuid: "not-a-uuid"\n')

    with pytest.raises(ConfigValidationError):
        load_config()


def test_duplicate_yaml_keys_rejected(isolated_config: Path) -> None:
    _write_config(isolated_config, "device_name: A\ndevice_name: B\n")

    with pytest.raises(ConfigValidationError):
        load_config()


def test_non_positive_timeout_rejected(isolated_config: Path) -> None:
    with pytest.raises(ConfigValidationError):
        load_config({"scan_timeout_s": 0})


def test_unknown_encoding_rejected(isolated_config: Path) -> None:
    with pytest.raises(ConfigValidationError):
        load_config({"encoding": "klingon-8"})


def test_root_must_be_mapping(isolated_config: Path) -> None:
    _write_config(isolated_config, "- device_name\n")

    with pytest.raises(ConfigValidationError):
        load_config()


def test_short_uuids_expand_to_base_uuid() -> None:
    assert normalize_uuid("2A1C", context="x") == "00002a1c-0000-1000-8000-00805f9b34fb"
    assert normalize_uuid("0000180F", context="x") == "0000180f-0000-1000-8000-00805f9b34fb"
    assert normalize_uuid(" ABCD1234-AB12-CD34-EF56-ABCDEF123456 ", context="x") == (
        "abcd1234-ab12-cd34-ef56-abcdef123456"
    )


@pytest.mark.parametrize("encoding", ["hex", "base64", "rot13"])
def test_non_text_encoding_rejected(isolated_config: Path, encoding: str) -> None:
    _write_config(isolated_config, f"encoding: {encoding}\n")

    with pytest.raises(ConfigValidationError, match="not a text encoding"):
        load_config()
