"""
Target graph model and invocation memoizer.

A target owner is a ``Targets`` subclass whose build operations are methods
marked with ``@target``. The descriptor table of an owner class is built once,
when the class is created; nothing is executed while building it.

Every call of a target goes through the owner's memoization table: the body of
a given (target, input) pair runs at most once per owner instance, and every
caller, concurrent or later, observes the same outcome.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import typing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from oncebuild.core.timing import timed
from oncebuild.core.utils import log
from oncebuild.errors import ConfigurationError, InvocationFailed
from oncebuild.naming import cli_name, normalize
from oncebuild.options import RESERVED_NAMES, RESERVED_SHORTS, Option

if TYPE_CHECKING:
    from oncebuild.context import RunContext

logger = logging.getLogger(__name__)


# =============================================================================
# Invocation Keys
# =============================================================================


class _NoInput:
    """Marks an invocation without input. Distinct from every value, ``None`` included."""

    _instance: Optional["_NoInput"] = None

    def __new__(cls) -> "_NoInput":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_INPUT"

    def __reduce__(self) -> str:
        return "NO_INPUT"


NO_INPUT = _NoInput()


@dataclass(frozen=True)
class InvocationKey:
    """Identifies an invocation of a target with a certain input."""

    target: str
    input: Any = NO_INPUT

    def prefix(self, prefix: str) -> "InvocationKey":
        """Prefix the target name, e.g. to distinguish targets of other owners."""
        return InvocationKey(prefix + self.target, self.input)

    def __str__(self) -> str:
        if self.input is NO_INPUT:
            return self.target
        return f"{self.target}({self.input})"


@dataclass
class MemoizedEntry:
    """The shared outcome of one invocation: a task, pending until the body settles."""

    key: InvocationKey
    outcome: "asyncio.Task[Any]"

    @property
    def pending(self) -> bool:
        return not self.outcome.done()


# =============================================================================
# Target Descriptors
# =============================================================================


@dataclass(frozen=True)
class TargetDescriptor:
    """Structural description of one target of an owner class."""

    name: str
    attribute: str
    input_type: Optional[type]
    result_type: Any
    description: str
    is_default: bool = False
    public: bool = True
    has_default_input: bool = False

    @property
    def takes_input(self) -> bool:
        return self.input_type is not None


def _is_hashable_type(type_: Any) -> bool:
    origin = typing.get_origin(type_) or type_
    if not isinstance(origin, type):
        return True
    return getattr(origin, "__hash__", None) is not None


class target:
    """Mark a method as a build target.

    Usable bare (``@target``) or with arguments
    (``@target(description="Pack the package", default=True)``). The method
    takes at most one input besides ``self`` and may be a plain or an ``async``
    function. Calling it on an owner instance returns an awaitable that yields
    the memoized result.
    """

    def __init__(
        self,
        func: Optional[Callable[..., Any]] = None,
        *,
        description: Optional[str] = None,
        default: bool = False,
    ):
        self.func = func
        self.description = description
        self.default = default
        self.attribute = getattr(func, "__name__", "")

    def __call__(self, func: Callable[..., Any]) -> "target":
        if self.func is not None:
            raise TypeError("target objects are not callable; access them through an owner instance")
        self.func = func
        self.attribute = func.__name__
        return self

    def __set_name__(self, owner: type, attribute: str) -> None:
        self.attribute = attribute

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self

        def invoke(*args: Any) -> Any:
            if len(args) > 1:
                raise TypeError(f"target {self.attribute!r} takes at most one input")
            return instance._invoke(self.attribute, args[0] if args else NO_INPUT)

        invoke.__name__ = self.attribute
        invoke.__doc__ = self.func.__doc__ if self.func else None
        return invoke

    def describe(self, owner: type) -> TargetDescriptor:
        """Derive the descriptor of this target; raises ConfigurationError if malformed."""
        func = self.func
        if func is None:
            raise ConfigurationError(f"{owner.__name__}.{self.attribute}: @target without a function")
        where = f"{owner.__name__}.{self.attribute}"

        parameters = list(inspect.signature(func).parameters.values())[1:]
        if len(parameters) > 1:
            raise ConfigurationError(f"{where}: a target takes at most one input, got {len(parameters)}")
        try:
            hints = typing.get_type_hints(func)
        except NameError:
            hints = dict(getattr(func, "__annotations__", {}))

        input_type: Optional[type] = None
        has_default_input = False
        if parameters:
            parameter = parameters[0]
            if parameter.kind not in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
                raise ConfigurationError(f"{where}: the input must be a plain positional parameter")
            input_type = hints.get(parameter.name, str)
            if isinstance(input_type, str):
                raise ConfigurationError(f"{where}: cannot resolve input type {input_type!r}")
            if not _is_hashable_type(input_type):
                raise ConfigurationError(
                    f"{where}: input type {input_type!r} is not hashable; "
                    "invocations could not be memoized"
                )
            has_default_input = parameter.default is not parameter.empty

        description = self.description
        if description is None:
            doc = inspect.getdoc(func) or ""
            description = doc.splitlines()[0] if doc else ""

        return TargetDescriptor(
            name=cli_name(self.attribute),
            attribute=self.attribute,
            input_type=input_type,
            result_type=hints.get("return"),
            description=description,
            is_default=self.default,
            public=not self.attribute.startswith("_"),
            has_default_input=has_default_input,
        )


# =============================================================================
# Registration
# =============================================================================


def _collect(owner: type, kind: type) -> dict[str, Any]:
    """Members of ``kind`` along the MRO, base classes first; overrides replace."""
    found: dict[str, Any] = {}
    for klass in reversed(owner.__mro__):
        for attribute, member in vars(klass).items():
            if isinstance(member, kind):
                found[attribute] = member
            elif attribute in found:
                # overridden by something that is not a target/option
                del found[attribute]
    return found


def _reject_duplicate_names(owner: type, kind: str, named: dict[str, str]) -> None:
    """Names equal up to case and separators could not be told apart on the command line."""
    seen: dict[str, str] = {}
    for attribute, name in named.items():
        other = seen.setdefault(normalize(name), attribute)
        if other != attribute:
            raise ConfigurationError(
                f"{owner.__name__}: {kind}s {other} and {attribute} share the name {name!r}"
            )


def build_target_table(owner: type) -> dict[str, TargetDescriptor]:
    table = {
        attribute: marker.describe(owner)
        for attribute, marker in _collect(owner, target).items()
    }
    _reject_duplicate_names(owner, "target", {a: d.name for a, d in table.items()})
    defaults = [d.name for d in table.values() if d.is_default]
    if len(defaults) > 1:
        raise ConfigurationError(
            f"{owner.__name__} declares more than one default target: {', '.join(defaults)}"
        )
    return table


def build_option_table(owner: type) -> dict[str, Option]:
    table: dict[str, Option] = _collect(owner, Option)
    _reject_duplicate_names(owner, "option", {a: o.name for a, o in table.items()})
    shorts: dict[str, str] = {}
    for option in table.values():
        if normalize(option.name) in RESERVED_NAMES:
            raise ConfigurationError(f"{owner.__name__}: option name --{option.name} is reserved")
        if option.short:
            if option.short in RESERVED_SHORTS:
                raise ConfigurationError(f"{owner.__name__}: short flag -{option.short} is reserved")
            if option.short in shorts:
                raise ConfigurationError(
                    f"{owner.__name__}: short flag -{option.short} used by "
                    f"--{shorts[option.short]} and --{option.name}"
                )
            shorts[option.short] = option.name
    return table


# =============================================================================
# Target Owners
# =============================================================================


class Targets:
    """Base class of target owners.

    Subclasses declare targets with ``@target`` and options with ``Option``.
    Each instance owns a private memoization table; obtain collaborating owners
    through ``self.context.once(OwnerType, *args)`` so that each distinct
    (type, arguments) pair is constructed once per run.
    """

    __targets__: dict[str, TargetDescriptor] = {}
    __options__: dict[str, Option] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.__targets__ = build_target_table(cls)
        cls.__options__ = build_option_table(cls)

    def __new__(cls, *args: Any, **kwargs: Any) -> "Targets":
        self = super().__new__(cls)
        self._entries: dict[tuple[str, Any], MemoizedEntry] = {}
        self._entries_lock = threading.Lock()
        self._context: Optional["RunContext"] = None
        self._label: Optional[str] = None
        return self

    # -- structure -----------------------------------------------------------

    @classmethod
    def targets(cls) -> list[TargetDescriptor]:
        """All targets in declaration order, private ones included."""
        return list(cls.__targets__.values())

    @classmethod
    def public_targets(cls) -> list[TargetDescriptor]:
        return [d for d in cls.__targets__.values() if d.public]

    @classmethod
    def options(cls) -> list[Option]:
        return list(cls.__options__.values())

    @classmethod
    def default_target(cls) -> TargetDescriptor:
        for descriptor in cls.__targets__.values():
            if descriptor.is_default:
                return descriptor
        raise ConfigurationError(
            f"{cls.__name__} has no default target. "
            "Mark one target with @target(default=True) or name targets on the command line."
        )

    # -- run context ---------------------------------------------------------

    @property
    def context(self) -> "RunContext":
        if self._context is None:
            from oncebuild.context import RunContext

            RunContext().adopt(self)
        assert self._context is not None
        return self._context

    def invocations(self) -> list[MemoizedEntry]:
        """Snapshot of the memoization table."""
        with self._entries_lock:
            return list(self._entries.values())

    # -- memoized invocation -------------------------------------------------

    def _display_key(self, key: InvocationKey) -> InvocationKey:
        return key.prefix(f"{self._label}.") if self._label else key

    async def _invoke(self, attribute: str, input: Any = NO_INPUT) -> Any:
        descriptor = type(self).__targets__[attribute]
        key = InvocationKey(descriptor.name, input)
        slot = (attribute, input)
        try:
            hash(slot)
        except TypeError as e:
            raise ConfigurationError(
                f"{self._display_key(key).target}: input {input!r} is not hashable; "
                "invocations could not be memoized"
            ) from e

        with self._entries_lock:
            entry = self._entries.get(slot)
            if entry is None:
                self.context.check_not_aborted(self._display_key(key))
                task = asyncio.get_running_loop().create_task(self._execute(descriptor, key))
                entry = self._entries[slot] = MemoizedEntry(key, task)
            else:
                logger.debug("reusing %s", self._display_key(key))

        # a cancelled waiter must not cancel the shared body
        return await asyncio.shield(entry.outcome)

    async def _execute(self, descriptor: TargetDescriptor, key: InvocationKey) -> Any:
        marker = getattr(type(self), descriptor.attribute)
        args = () if key.input is NO_INPUT else (key.input,)
        display = self._display_key(key)

        log.dim(f"{display} started")
        try:
            with timed(self.context.timings, str(display)):
                if inspect.iscoroutinefunction(marker.func):
                    result = await marker.func(self, *args)
                else:
                    result = await asyncio.to_thread(marker.func, self, *args)
                    if inspect.isawaitable(result):
                        result = await result
        except Exception as e:
            log.dim(f"{display} failed")
            raise InvocationFailed(display) from e
        log.dim(f"{display} done")
        return result
