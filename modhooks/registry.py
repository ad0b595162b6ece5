"""Priority ordered extension points for mods and game subsystems.

The registry replaces hardcoded "look for field X" branching with named
extension points that any collaborator can contribute handlers to.  A hook
owner creates an :class:`ExtensionPoint` once during start-up, mods register
handlers against it and the hook site simply dispatches::

    registry = ExtensionRegistry()
    registry.create_extension_point("item-description", "accumulate")
    registry.register("item-description", base_description, priority=1)
    registry.register("item-description", colorize)
    lines = registry.dispatch("item-description", item)

Key concepts
============

``Policy``
    Composition rule of an extension point.  ``accumulate`` runs every
    handler and collects each non-empty result in order, ``first_match``
    stops at the first handler that returns something.

``Registration``
    Immutable record binding one handler to one point.  Registrations are
    ordered by ``(priority, sequence)`` where ``sequence`` is the insertion
    counter of the point, so equal priorities keep their registration order.

``DispatchResult``
    Read-only sequence of the non-empty handler results together with the
    tagged outcome of every handler that ran, including isolated failures.

Handlers return ``None`` to signal "no opinion".  Any other value, falsy or
not, is a result.  Each extension point guards its handler list with its own
lock and stores it as a tuple that is replaced on every mutation, so a
dispatch always iterates a consistent snapshot and handlers are free to
register or unregister handlers while they run.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence as SequenceABC
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
import inspect
import itertools
import logging
import threading
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .exceptions import (
    DuplicateExtensionPoint,
    HandlerFailure,
    HandlerNotFound,
    HandlerSignatureError,
    RegistrySealedError,
    UnknownExtensionPoint,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DispatchResult",
    "EXTENSION_REGISTRY",
    "ExtensionPoint",
    "ExtensionRegistry",
    "FailureMode",
    "Outcome",
    "Policy",
    "Registration",
]

Handler = Callable[..., Any]
FailureCallback = Callable[[HandlerFailure], None]


class Policy(str, Enum):
    """How the results of several handlers are combined."""

    ACCUMULATE = "accumulate"
    FIRST_MATCH = "first_match"

    @classmethod
    def coerce(cls, value: Union["Policy", str]) -> "Policy":
        if isinstance(value, cls):
            return value
        cleaned = str(value or "").strip().lower().replace("-", "_")
        try:
            return cls(cleaned)
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown composition policy '{value}'. Valid values: {valid}.") from None


class FailureMode(str, Enum):
    """What happens when a handler raises during dispatch."""

    ISOLATE = "isolate"
    LOG = "log"
    RAISE = "raise"

    @classmethod
    def coerce(cls, value: Union["FailureMode", str]) -> "FailureMode":
        if isinstance(value, cls):
            return value
        cleaned = str(value or "").strip().lower()
        try:
            return cls(cleaned)
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown failure mode '{value}'. Valid values: {valid}.") from None


@dataclass(frozen=True)
class Registration:
    """A handler bound to an extension point."""

    point_name: str
    handler: Handler
    priority: int
    sequence: int
    owner: Optional[str] = None

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.priority, self.sequence)

    def matches(self, handler: Any) -> bool:
        if isinstance(handler, Registration):
            return handler is self
        return self.handler == handler


@dataclass(frozen=True)
class Outcome:
    """Result of invoking one registration during a dispatch."""

    registration: Registration
    value: Any = None
    failure: Optional[HandlerFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def empty(self) -> bool:
        return self.failure is None and self.value is None


class DispatchResult(SequenceABC):
    """Ordered, read-only view over the non-empty results of one dispatch."""

    __slots__ = ("point_name", "policy", "outcomes", "_values")

    def __init__(self, point_name: str, policy: Policy, outcomes: Sequence[Outcome] = ()) -> None:
        self.point_name = point_name
        self.policy = policy
        self.outcomes: Tuple[Outcome, ...] = tuple(outcomes)
        self._values = tuple(outcome.value for outcome in self.outcomes if outcome.ok and outcome.value is not None)

    def __getitem__(self, index):
        return self._values[index]

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DispatchResult):
            return self._values == other._values
        if isinstance(other, (list, tuple)):
            return self._values == tuple(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"DispatchResult(point_name={self.point_name!r}, policy={self.policy.value!r}, "
            f"values={list(self._values)!r}, failures={len(self.failures)})"
        )

    @property
    def values(self) -> Tuple[Any, ...]:
        return self._values

    @property
    def failures(self) -> Tuple[HandlerFailure, ...]:
        return tuple(outcome.failure for outcome in self.outcomes if outcome.failure is not None)

    @property
    def calls(self) -> int:
        """Number of handlers invoked during the dispatch."""

        return len(self.outcomes)

    @property
    def matched(self) -> bool:
        return bool(self._values)

    @property
    def value(self) -> Any:
        """The first non-empty result, or ``None`` when nothing matched."""

        return self._values[0] if self._values else None


class ExtensionPoint:
    """A named hook holding a priority ordered list of handlers.

    Points are created through :meth:`ExtensionRegistry.create_extension_point`
    and live for the lifetime of their registry.  ``signature`` documents the
    positional arguments every handler receives; when set, handlers are
    checked against it at registration time.
    """

    def __init__(
        self,
        name: str,
        policy: Union[Policy, str],
        *,
        signature: Optional[Sequence[str]] = None,
        failure_mode: Optional[Union[FailureMode, str]] = None,
        on_failure: Optional[FailureCallback] = None,
        description: str = "",
        owner: Optional[str] = None,
    ) -> None:
        if not name or not isinstance(name, str):
            raise ValueError("Extension point names must be non-empty strings.")
        if on_failure is not None and not callable(on_failure):
            raise TypeError("on_failure must be callable.")
        self.name = name
        self.policy = Policy.coerce(policy)
        self.signature: Optional[Tuple[str, ...]] = tuple(signature) if signature is not None else None
        self.failure_mode = FailureMode.coerce(failure_mode) if failure_mode is not None else None
        self.on_failure = on_failure
        self.description = description
        self.owner = owner
        self._lock = threading.RLock()
        self._sequence = itertools.count()
        self._registrations: Tuple[Registration, ...] = ()

    def __repr__(self) -> str:
        return f"ExtensionPoint(name={self.name!r}, policy={self.policy.value!r}, handlers={len(self)})"

    def __len__(self) -> int:
        return len(self._registrations)

    @property
    def registrations(self) -> Tuple[Registration, ...]:
        """Snapshot of the registrations in dispatch order."""

        with self._lock:
            return self._registrations

    @property
    def handlers(self) -> Tuple[Handler, ...]:
        return tuple(registration.handler for registration in self.registrations)

    def check_signature(self, handler: Handler) -> None:
        if self.signature is None:
            return
        try:
            signature = inspect.signature(handler)
        except (TypeError, ValueError):
            # Some builtins cannot be introspected; accept them as-is.
            return
        try:
            signature.bind(*self.signature)
        except TypeError as exc:
            expected = ", ".join(self.signature) or "no arguments"
            raise HandlerSignatureError(
                f"Handler {handler!r} cannot be called with ({expected}) "
                f"as required by extension point '{self.name}': {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # mutation, always called through the registry
    # ------------------------------------------------------------------
    def _effective_priority(self, priority: Optional[int]) -> int:
        registrations = self._registrations
        count = len(registrations)
        append_at = max(count + 1, registrations[-1].priority) if registrations else 1
        if priority is None:
            return append_at
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise TypeError(f"Handler priority must be an integer, got {type(priority)!r}.")
        clamped = min(max(priority, 1), count + 1)
        if clamped == count + 1:
            return append_at
        return clamped

    def _insert(self, handler: Handler, priority: Optional[int], owner: Optional[str]) -> Registration:
        with self._lock:
            registration = Registration(
                point_name=self.name,
                handler=handler,
                priority=self._effective_priority(priority),
                sequence=next(self._sequence),
                owner=owner,
            )
            current = self._registrations
            index = bisect_right([entry.sort_key for entry in current], registration.sort_key)
            self._registrations = current[:index] + (registration,) + current[index:]
            return registration

    def _remove(self, handler: Any) -> Optional[Registration]:
        with self._lock:
            current = self._registrations
            for index, registration in enumerate(current):
                if registration.matches(handler):
                    self._registrations = current[:index] + current[index + 1:]
                    return registration
            return None

    def _remove_owned(self, owner: str) -> Tuple[Registration, ...]:
        with self._lock:
            removed = tuple(entry for entry in self._registrations if entry.owner == owner)
            if removed:
                self._registrations = tuple(entry for entry in self._registrations if entry.owner != owner)
            return removed


class ExtensionRegistry:
    """Collection of named extension points with ordered dispatch.

    The registry has two phases.  During initialisation collaborators create
    points and register handlers.  Calling :meth:`seal` switches to steady
    state where only :meth:`dispatch` is allowed.  Registry-wide state is
    limited to the name table; each point serialises its own handler list so
    work on one point never blocks another.
    """

    def __init__(self, *, failure_mode: Union[FailureMode, str] = FailureMode.ISOLATE) -> None:
        self._points: Dict[str, ExtensionPoint] = {}
        self._lock = threading.RLock()
        self._sealed = False
        self._owner = threading.local()
        self.default_failure_mode = FailureMode.coerce(failure_mode)

    def __contains__(self, point_name: object) -> bool:
        with self._lock:
            return point_name in self._points

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def __repr__(self) -> str:
        state = "sealed" if self._sealed else "open"
        return f"ExtensionRegistry(points={len(self)}, {state})"

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Finish the initialisation phase; later mutations raise."""

        with self._lock:
            if self._sealed:
                return
            self._sealed = True
            points = list(self._points.values())
        # Wait out registrations that passed the sealed check before the flag flipped.
        for point in points:
            with point._lock:
                pass
        logger.info("Extension registry sealed with %d extension point(s).", len(points))

    @contextmanager
    def owned_by(self, owner: Optional[str]) -> Iterator["ExtensionRegistry"]:
        """Label points and registrations made in this block (on this thread) with ``owner``."""

        previous = getattr(self._owner, "value", None)
        self._owner.value = owner
        try:
            yield self
        finally:
            self._owner.value = previous

    def apply_config(self, config: Any) -> List[ExtensionPoint]:
        """Create every extension point declared by a :class:`~modhooks.config.RegistryConfig`.

        The configuration is applied as a whole: if any point cannot be
        created, the registry is left exactly as it was.
        """

        failure_mode = FailureMode.coerce(config.failure_mode)
        owner = getattr(self._owner, "value", None)
        created = [
            ExtensionPoint(
                point.name,
                point.policy,
                signature=point.signature,
                failure_mode=point.failure_mode,
                description=point.description,
                owner=owner,
            )
            for point in config.points
        ]
        with self._lock:
            self._ensure_mutable("apply configuration to", "registry")
            names = set()
            for point in created:
                if point.name in self._points or point.name in names:
                    raise DuplicateExtensionPoint(point.name)
                names.add(point.name)
            for point in created:
                self._points[point.name] = point
            self.default_failure_mode = failure_mode
        logger.debug(
            "Applied configuration with %d extension point(s), failure mode '%s'.",
            len(created),
            failure_mode.value,
        )
        return created

    # ------------------------------------------------------------------
    # extension points
    # ------------------------------------------------------------------
    def create_extension_point(
        self,
        name: str,
        policy: Union[Policy, str] = Policy.ACCUMULATE,
        *,
        signature: Optional[Sequence[str]] = None,
        failure_mode: Optional[Union[FailureMode, str]] = None,
        on_failure: Optional[FailureCallback] = None,
        description: str = "",
    ) -> ExtensionPoint:
        """Create the hook ``name`` with the given composition ``policy``."""

        point = ExtensionPoint(
            name,
            policy,
            signature=signature,
            failure_mode=failure_mode,
            on_failure=on_failure,
            description=description,
            owner=getattr(self._owner, "value", None),
        )
        with self._lock:
            self._ensure_mutable("create extension point", name)
            if name in self._points:
                raise DuplicateExtensionPoint(name)
            self._points[name] = point
        logger.debug("Created extension point '%s' (%s).", name, point.policy.value)
        return point

    def remove_owned_points(self, owner: str) -> Tuple[ExtensionPoint, ...]:
        """Drop the extension points created while ``owner`` was active.

        Only meant for undoing a failed initialisation step; points are
        otherwise kept for the lifetime of the registry.
        """

        with self._lock:
            self._ensure_mutable("remove extension points owned by", owner)
            removed = tuple(point for point in self._points.values() if point.owner == owner)
            for point in removed:
                del self._points[point.name]
        return removed

    def get_extension_point(self, name: str) -> ExtensionPoint:
        with self._lock:
            try:
                return self._points[name]
            except KeyError:
                raise UnknownExtensionPoint(name) from None

    def has_extension_point(self, name: str) -> bool:
        return name in self

    def extension_points(self) -> Mapping[str, ExtensionPoint]:
        with self._lock:
            return MappingProxyType(dict(self._points))

    def registrations(self, point_name: str) -> Tuple[Registration, ...]:
        return self.get_extension_point(point_name).registrations

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------
    def register(
        self,
        point_name: str,
        handler: Handler,
        priority: Optional[int] = None,
        *,
        owner: Optional[str] = None,
    ) -> Registration:
        """Insert ``handler`` into the ordered handler list of ``point_name``.

        ``priority`` is a 1-based position: lower runs earlier.  Values are
        clamped to ``[1, len + 1]`` and anything past the end appends.  When
        omitted the handler is appended.  Handlers sharing a priority keep
        their registration order.
        """

        point = self.get_extension_point(point_name)
        if not callable(handler):
            raise TypeError(f"Handlers must be callable, got {type(handler)!r}.")
        point.check_signature(handler)
        if owner is None:
            owner = getattr(self._owner, "value", None)
        with point._lock:
            self._ensure_mutable("register a handler on", point_name)
            registration = point._insert(handler, priority, owner)
        logger.debug(
            "Registered %r on '%s' at priority %d.", handler, point_name, registration.priority
        )
        return registration

    def handler(
        self,
        point_name: str,
        priority: Optional[int] = None,
        *,
        owner: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register` returning the function unchanged."""

        def decorator(func: Handler) -> Handler:
            self.register(point_name, func, priority, owner=owner)
            return func

        return decorator

    def unregister(self, point_name: str, handler: Any, *, strict: bool = False) -> bool:
        """Remove the first registration of ``handler`` from ``point_name``.

        ``handler`` may be the callable or the :class:`Registration` returned
        by :meth:`register`.  Returns ``False`` when nothing matched, or
        raises :class:`HandlerNotFound` if ``strict`` is set.
        """

        point = self.get_extension_point(point_name)
        with point._lock:
            self._ensure_mutable("unregister a handler from", point_name)
            removed = point._remove(handler)
        if removed is None:
            if strict:
                raise HandlerNotFound(point_name, handler)
            return False
        logger.debug("Unregistered %r from '%s'.", removed.handler, point_name)
        return True

    def unregister_owner(self, owner: str) -> Tuple[Registration, ...]:
        """Remove every registration labelled with ``owner`` across all points."""

        with self._lock:
            self._ensure_mutable("unregister handlers owned by", owner)
            points = list(self._points.values())
        removed: List[Registration] = []
        for point in points:
            removed.extend(point._remove_owned(owner))
        return tuple(removed)

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------
    def dispatch(self, point_name: str, *args: Any, **kwargs: Any) -> DispatchResult:
        """Invoke the handlers of ``point_name`` in order.

        Handlers run against a snapshot of the registration list, so changes
        made while dispatching only apply to the next call.  Failures are
        handled according to the point's :class:`FailureMode`.
        """

        point = self.get_extension_point(point_name)
        first_match = point.policy is Policy.FIRST_MATCH
        outcomes: List[Outcome] = []
        for registration in point.registrations:
            try:
                value = registration.handler(*args, **kwargs)
            except Exception as exc:
                failure = HandlerFailure(point.name, registration.handler, exc, registration)
                outcomes.append(Outcome(registration, failure=failure))
                if self._report_failure(point, failure) is FailureMode.RAISE:
                    raise failure from exc
                continue
            outcomes.append(Outcome(registration, value=value))
            if first_match and value is not None:
                break
        return DispatchResult(point.name, point.policy, outcomes)

    def dispatch_value(self, point_name: str, *args: Any, default: Any = None, **kwargs: Any) -> Any:
        """Return the first non-empty handler result of ``point_name`` or ``default``."""

        result = self.dispatch(point_name, *args, **kwargs)
        return result.value if result.matched else default

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _ensure_mutable(self, action: str, target: str) -> None:
        if self._sealed:
            raise RegistrySealedError(f"Cannot {action} '{target}': the extension registry is sealed.")

    def _report_failure(self, point: ExtensionPoint, failure: HandlerFailure) -> FailureMode:
        mode = point.failure_mode or self.default_failure_mode
        if mode is FailureMode.LOG:
            logger.warning("%s", failure, exc_info=failure.error)
        else:
            logger.debug("%s", failure)
        if point.on_failure is not None:
            try:
                point.on_failure(failure)
            except Exception:
                logger.exception("Failure callback of extension point '%s' raised.", point.name)
        return mode


# Process-wide registry populated by collaborators during start-up.
EXTENSION_REGISTRY = ExtensionRegistry()
