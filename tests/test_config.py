import json

import pytest

from modhooks import (
    ConfigurationError,
    DuplicateExtensionPoint,
    FailureMode,
    Policy,
    PointConfig,
    RegistryConfig,
    RegistrySealedError,
)


def test_from_mapping_parses_points():
    config = RegistryConfig.from_mapping(
        {
            "failure_mode": "log",
            "points": [
                {"name": "item-description", "signature": ["item"], "description": "Tooltip"},
                {"name": "mob-behavior", "policy": "first_match", "failure_mode": "raise"},
            ],
        }
    )

    assert config.failure_mode is FailureMode.LOG
    description, behaviour = config.points
    assert description.policy is Policy.ACCUMULATE
    assert description.signature == ("item",)
    assert description.failure_mode is None
    assert behaviour.policy is Policy.FIRST_MATCH
    assert behaviour.failure_mode is FailureMode.RAISE


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"points": "item-description"},
        {"points": [{"policy": "accumulate"}]},
        {"points": [{"name": "a", "policy": "sometimes"}]},
        {"points": [{"name": "a", "signature": "item"}]},
        {"points": [{"name": "a"}, {"name": "a"}]},
        {"failure_mode": "shrug"},
    ],
)
def test_from_mapping_rejects_invalid_payloads(payload):
    with pytest.raises(ConfigurationError):
        RegistryConfig.from_mapping(payload)


def test_dump_and_load_json(tmp_path):
    config = RegistryConfig(
        failure_mode=FailureMode.RAISE,
        points=[PointConfig("mob-behavior", Policy.FIRST_MATCH, signature=("mob", "world"))],
    )
    destination = tmp_path / "nested" / "registry.json"

    config.dump(destination)

    assert json.loads(destination.read_text())["points"][0]["policy"] == "first_match"
    assert RegistryConfig.load(destination) == config


def test_load_yaml(tmp_path):
    source = tmp_path / "registry.yaml"
    source.write_text(
        "failure_mode: isolate\n"
        "points:\n"
        "  - name: item-description\n"
        "    policy: accumulate\n"
        "    signature: [item]\n"
    )

    config = RegistryConfig.load(source)

    assert config.points[0].name == "item-description"
    assert config.points[0].signature == ("item",)


def test_load_reports_missing_and_malformed_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        RegistryConfig.load(tmp_path / "absent.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        RegistryConfig.load(broken)

    broken_yaml = tmp_path / "broken.yml"
    broken_yaml.write_text("points: [unclosed")
    with pytest.raises(ConfigurationError):
        RegistryConfig.load(broken_yaml)


def test_from_env(tmp_path):
    source = tmp_path / "registry.json"
    source.write_text(json.dumps({"points": [{"name": "desc"}]}))

    config = RegistryConfig.from_env(
        {"MODHOOKS_CONFIG": str(source), "MODHOOKS_FAILURE_MODE": "log"}
    )

    assert [point.name for point in config.points] == ["desc"]
    assert config.failure_mode is FailureMode.LOG


def test_from_env_defaults_and_validation():
    assert RegistryConfig.from_env({"UNRELATED": "1"}) == RegistryConfig()
    with pytest.raises(ConfigurationError):
        RegistryConfig.from_env({"MODHOOKS_FAILURE_MODE": "loud"})


def test_apply_config_creates_points(registry):
    config = RegistryConfig.from_mapping(
        {
            "failure_mode": "raise",
            "points": [{"name": "lookup", "policy": "first_match", "signature": ["key"]}],
        }
    )

    created = registry.apply_config(config)

    assert [point.name for point in created] == ["lookup"]
    point = registry.get_extension_point("lookup")
    assert point.policy is Policy.FIRST_MATCH
    assert point.signature == ("key",)
    assert registry.default_failure_mode is FailureMode.RAISE


def test_apply_config_refuses_sealed_registry(registry):
    registry.seal()
    config = RegistryConfig.from_mapping({"failure_mode": "raise", "points": []})

    with pytest.raises(RegistrySealedError):
        registry.apply_config(config)
    assert registry.default_failure_mode is FailureMode.ISOLATE


def test_apply_config_is_all_or_nothing(registry):
    registry.create_extension_point("b", "accumulate")
    config = RegistryConfig.from_mapping(
        {"failure_mode": "raise", "points": [{"name": "a"}, {"name": "b"}]}
    )

    with pytest.raises(DuplicateExtensionPoint):
        registry.apply_config(config)

    assert "a" not in registry
    assert registry.default_failure_mode is FailureMode.ISOLATE
