"""Support module that auto discovery must skip."""


def setup_plugin(registry, context):  # pragma: no cover - never discovered
    raise AssertionError("helpers is not a plugin module")
