"""Item tooltip text assembled from registered description handlers.

Instead of a tooltip builder that checks ``item.helptext``,
``item.longdesc`` and every other known field one after another, each piece
of text is contributed by a handler on the ``item-description`` extension
point.  Mods add lines (or decorate existing ones) by registering their own
handlers; the built-in ones only cover the fields every item has.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .registry import EXTENSION_REGISTRY, ExtensionRegistry, Policy

DESCRIPTION_POINT = "item-description"

__all__ = ["DESCRIPTION_POINT", "describe", "install"]


def _field(item: Any, name: str) -> Optional[str]:
    if isinstance(item, Mapping):
        value = item.get(name)
    else:
        value = getattr(item, name, None)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def base_description(item: Any) -> Optional[str]:
    name = _field(item, "name")
    description = _field(item, "description")
    if name and description:
        return f"{name}: {description}"
    return name or description


def help_text(item: Any) -> Optional[str]:
    return _field(item, "helptext")


def long_description(item: Any) -> Optional[str]:
    return _field(item, "longdesc")


def install(registry: Optional[ExtensionRegistry] = None) -> ExtensionRegistry:
    """Create the description point on ``registry`` with the built-in handlers."""

    registry = registry if registry is not None else EXTENSION_REGISTRY
    registry.create_extension_point(
        DESCRIPTION_POINT,
        Policy.ACCUMULATE,
        signature=("item",),
        description="Lines shown in an item tooltip, top to bottom.",
    )
    registry.register(DESCRIPTION_POINT, base_description, priority=1, owner=__name__)
    registry.register(DESCRIPTION_POINT, help_text, owner=__name__)
    registry.register(DESCRIPTION_POINT, long_description, owner=__name__)
    return registry


def describe(item: Any, registry: Optional[ExtensionRegistry] = None) -> str:
    """Return the tooltip text for ``item``, one contributed line per row."""

    registry = registry if registry is not None else EXTENSION_REGISTRY
    lines = registry.dispatch(DESCRIPTION_POINT, item)
    return "\n".join(str(line) for line in lines)
