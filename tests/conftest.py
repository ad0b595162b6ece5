from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from modhooks import ExtensionRegistry


@pytest.fixture()
def registry() -> ExtensionRegistry:
    """Return a fresh registry so tests never share extension points."""

    return ExtensionRegistry()


@pytest.fixture()
def greeting_registry(registry: ExtensionRegistry) -> ExtensionRegistry:
    """Registry with the ``greeting`` point the sample plugins register on."""

    registry.create_extension_point("greeting", "accumulate", signature=("name",))
    return registry
