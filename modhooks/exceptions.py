"""Custom exception hierarchy for the extension registry."""

from __future__ import annotations

from typing import Any, Optional


class ExtensionRegistryError(RuntimeError):
    """Base exception for extension registry failures."""


class DuplicateExtensionPoint(ExtensionRegistryError, ValueError):
    """Raised when an extension point name is created twice."""

    def __init__(self, point_name: str) -> None:
        super().__init__(f"Extension point '{point_name}' already exists.")
        self.point_name = point_name


class UnknownExtensionPoint(ExtensionRegistryError, KeyError):
    """Raised when an operation targets an extension point that was never created."""

    def __init__(self, point_name: str) -> None:
        super().__init__(f"Extension point '{point_name}' does not exist.")
        self.point_name = point_name

    # KeyError.__str__ would repr() the message.
    def __str__(self) -> str:
        return str(self.args[0])


class HandlerNotFound(ExtensionRegistryError, LookupError):
    """Raised by strict unregistration when the handler is not registered."""

    def __init__(self, point_name: str, handler: Any) -> None:
        super().__init__(
            f"Handler {_describe(handler)} is not registered on '{point_name}'."
        )
        self.point_name = point_name
        self.handler = handler


class HandlerSignatureError(ExtensionRegistryError, TypeError):
    """Raised when a handler cannot accept an extension point's call signature."""


class RegistrySealedError(ExtensionRegistryError):
    """Raised when the registry is mutated after :meth:`seal` was called."""


class ConfigurationError(ExtensionRegistryError, ValueError):
    """Raised when a registry configuration payload is invalid."""


class HandlerFailure(ExtensionRegistryError):
    """A handler raised while an extension point was dispatched.

    Instances are either collected into a dispatch result as tagged failure
    outcomes or raised directly when the point uses the ``raise`` failure
    mode.  The original exception is available as :attr:`error` and is also
    chained as ``__cause__`` when raised.
    """

    def __init__(
        self,
        point_name: str,
        handler: Any,
        error: BaseException,
        registration: Optional[Any] = None,
    ) -> None:
        super().__init__(
            f"Handler {_describe(handler)} failed on '{point_name}': "
            f"{type(error).__name__}: {error}"
        )
        self.point_name = point_name
        self.handler = handler
        self.error = error
        self.registration = registration


def _describe(handler: Any) -> str:
    name = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None)
    if name is None:
        return repr(handler)
    module = getattr(handler, "__module__", None)
    return f"'{module}.{name}'" if module else f"'{name}'"


__all__ = [
    "ConfigurationError",
    "DuplicateExtensionPoint",
    "ExtensionRegistryError",
    "HandlerFailure",
    "HandlerNotFound",
    "HandlerSignatureError",
    "RegistrySealedError",
    "UnknownExtensionPoint",
]
