"""Plugin loading for the extension registry.

Mods contribute behaviour by shipping a module with a ``setup_plugin``
callable.  The :class:`PluginManager` imports those modules during the
initialisation phase, hands each one the registry plus a read-only context
of exposed objects, and finally seals the registry so steady-state code can
only dispatch.

A plugin module looks like this::

    def setup_plugin(registry, context):
        registry.register("item-description", describe_enchantments)
        return EnchantmentPlugin()

Every handler registered inside ``setup_plugin`` is labelled with the plugin
name, which allows :meth:`PluginManager.unregister_plugin` to remove the
plugin's contributions again.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from importlib.util import find_spec
import logging
from pathlib import Path
import pkgutil
import sys
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import RegistryConfig
from .exceptions import ExtensionRegistryError
from .registry import EXTENSION_REGISTRY, ExtensionRegistry, Registration

logger = logging.getLogger(__name__)

__all__ = ["PluginError", "PluginManager", "PluginRecord"]


class PluginError(ExtensionRegistryError):
    """Raised whenever a plugin cannot be registered."""


@dataclass
class PluginRecord:
    """Simple data container describing a registered plugin."""

    name: str
    module: str
    obj: Any
    registrations: Tuple[Registration, ...] = ()


class PluginManager:
    """Loads plugin modules and lets them register handlers.

    The manager keeps a registry of plugin records and a context dictionary
    of objects the host decided to expose.  The context is handed to plugins
    during setup so they can pull whichever components they need.
    """

    def __init__(self, registry: Optional[ExtensionRegistry] = None) -> None:
        self.registry = registry if registry is not None else EXTENSION_REGISTRY
        self._plugins: Dict[str, PluginRecord] = {}
        self._exposed: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    @property
    def context(self) -> MappingProxyType:
        """Immutable view of the objects exposed to plugins."""

        return MappingProxyType(self._exposed)

    @property
    def plugins(self) -> MappingProxyType:
        """Immutable view of the registered plugins."""

        return MappingProxyType(self._plugins)

    def expose(self, name: str, obj: Any) -> None:
        """Expose ``obj`` to plugins under ``name``, replacing earlier entries."""

        if not name:
            raise PluginError("Exposed names must be non-empty strings.")
        self._exposed[name] = obj

    def register_plugin(self, module_name: str, attr: str = "setup_plugin") -> PluginRecord:
        """Import ``module_name`` and run its setup function.

        The callable receives the :class:`ExtensionRegistry` and the exposed
        context mapping.  Whatever it returns is stored on the record.
        """

        if module_name in self._plugins:
            raise PluginError(f"Plugin '{module_name}' is already registered.")
        if self.registry.sealed:
            raise PluginError(
                f"Cannot register plugin '{module_name}': the extension registry is sealed."
            )

        module = import_module(module_name)
        try:
            factory = getattr(module, attr)
        except AttributeError as exc:
            raise PluginError(
                f"Plugin '{module_name}' does not provide a '{attr}' callable."
            ) from exc

        if not callable(factory):
            raise PluginError(
                f"Plugin '{module_name}.{attr}' must be callable, got {type(factory)!r}."
            )

        with self.registry.owned_by(module_name):
            try:
                instance = factory(self.registry, self.context)
            except ExtensionRegistryError as exc:
                self._rollback(module_name)
                raise PluginError(f"Plugin '{module_name}' failed during setup: {exc}") from exc
            except Exception:
                self._rollback(module_name)
                raise
        record = PluginRecord(
            name=getattr(instance, "name", module_name),
            module=module_name,
            obj=instance,
            registrations=tuple(self._owned(module_name)),
        )
        self._plugins[module_name] = record
        logger.info(
            "Loaded plugin '%s' with %d handler(s).", record.name, len(record.registrations)
        )
        return record

    def unregister_plugin(self, module_name: str) -> Tuple[Registration, ...]:
        """Forget ``module_name`` and remove every handler it registered."""

        if module_name not in self._plugins:
            raise PluginError(f"Plugin '{module_name}' is not registered.")
        removed = self.registry.unregister_owner(module_name)
        del self._plugins[module_name]
        return removed

    def ensure(self, required: Iterable[str]) -> None:
        """Validate that all ``required`` plugins have been registered."""

        missing = [name for name in required if name not in self._plugins]
        if missing:
            raise PluginError(
                "Missing required plugin(s): " + ", ".join(sorted(missing))
            )

    def auto_discover(
        self,
        location: str | Path,
        *,
        attr: str = "setup_plugin",
        recursive: bool = True,
        match: Optional[Callable[[str], bool]] = None,
    ) -> Dict[str, PluginRecord]:
        """Automatically register plugins located under ``location``."""

        package_name, search_paths = self._resolve_auto_discover_location(location)
        matcher = match or self._default_auto_discover_match
        discovered: Dict[str, PluginRecord] = {}
        failures: List[Tuple[str, Exception]] = []
        for module_name in self._walk_auto_discover_modules(
            search_paths, package_name, recursive
        ):
            if not matcher(module_name):
                continue
            try:
                discovered[module_name] = self.register_plugin(module_name, attr=attr)
            except PluginError as exc:
                failures.append((module_name, exc))
        if failures:
            reasons = "\n".join(f"- {name}: {error}" for name, error in failures)
            raise PluginError(
                "Failed to auto discover plugin modules:\n" + reasons
            )
        return discovered

    def bootstrap(
        self,
        locations: Sequence[str | Path] = (),
        *,
        config: Optional[RegistryConfig] = None,
        seal: bool = True,
    ) -> Dict[str, PluginRecord]:
        """Run the start-up sequence: apply ``config``, discover plugins, seal."""

        if config is not None:
            self.registry.apply_config(config)
        discovered: Dict[str, PluginRecord] = {}
        for location in locations:
            discovered.update(self.auto_discover(location))
        if seal:
            self.registry.seal()
        return discovered

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _rollback(self, owner: str) -> None:
        self.registry.unregister_owner(owner)
        self.registry.remove_owned_points(owner)

    def _owned(self, owner: str) -> List[Registration]:
        owned: List[Registration] = []
        for point in self.registry.extension_points().values():
            owned.extend(entry for entry in point.registrations if entry.owner == owner)
        return owned

    @staticmethod
    def _default_auto_discover_match(module_name: str) -> bool:
        base = module_name.rsplit(".", 1)[-1].lower()
        return (
            base.startswith("plugin_")
            or base.endswith("plugin")
        )

    def _resolve_auto_discover_location(
        self, location: str | Path
    ) -> Tuple[str, Sequence[str]]:
        if isinstance(location, Path):
            path = location
        else:
            try:
                spec = find_spec(str(location))
            except (ImportError, ValueError):
                spec = None
            if spec and spec.submodule_search_locations:
                return str(location), list(spec.submodule_search_locations)
            path = Path(str(location))
        candidate = path.resolve()
        if not candidate.exists():
            raise PluginError(f"Plugin location '{location}' does not exist.")
        if not (candidate / "__init__.py").exists():
            raise PluginError(
                "Auto discovery requires package-style directories with an __init__.py."
            )
        return self._package_name_for(candidate), [str(candidate)]

    @staticmethod
    def _package_name_for(candidate: Path) -> str:
        for entry in sys.path:
            try:
                root = Path(entry or ".").resolve()
                relative = candidate.relative_to(root)
            except (OSError, ValueError):
                continue
            if relative.parts:
                return ".".join(relative.parts)
        raise PluginError(
            f"Unable to derive a package name for '{candidate}': it is not below any sys.path entry."
        )

    @staticmethod
    def _walk_auto_discover_modules(
        search_paths: Sequence[str],
        package_name: str,
        recursive: bool,
    ) -> Iterator[str]:
        for module_info in pkgutil.walk_packages(search_paths, package_name + "."):
            if module_info.ispkg and not recursive:
                continue
            if not recursive and module_info.name.count(".") > package_name.count(".") + 1:
                continue
            yield module_info.name
