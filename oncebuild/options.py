"""
Declared configuration values bound from the command line.

Options are declared on a target owner as class attributes::

    class BuildTargets(Targets):
        configuration = Option(str, "Release or Debug", default="Release")
        clean = Option(bool, "Remove previous outputs first")

Values are coerced from text through a small closed table of types.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from oncebuild.core.utils import Verbosity
from oncebuild.errors import ConfigurationError, UsageError
from oncebuild.naming import cli_name, find_by_name, normalize


# =============================================================================
# Coercion
# =============================================================================

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def parse_bool(text: str) -> bool:
    value = text.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"not a boolean: {text!r}")


COERCIONS: dict[type, Callable[[str], Any]] = {
    str: str,
    bool: parse_bool,
    int: int,
    Path: Path,
}


def is_supported_type(type_: Any) -> bool:
    return type_ in COERCIONS or (isinstance(type_, type) and issubclass(type_, Enum))


def coerce(type_: type, value: Any, what: str) -> Any:
    """Convert ``value`` to ``type_``.

    Text is parsed; values that already have the right type (as loaded from a
    YAML defaults file) pass through. Enumeration members are matched by name,
    abbreviations allowed.

    Raises:
        UsageError: If the value cannot be converted.
    """
    if isinstance(type_, type) and issubclass(type_, Enum):
        if isinstance(value, type_):
            return value
        return find_by_name(
            list(type_),
            str(value),
            name=lambda member: member.name.lower(),
            items_name=f"values of {what}",
        )

    if type_ is bool and isinstance(value, bool):
        return value
    if type_ is not bool and isinstance(value, type_):
        return value

    convert = COERCIONS.get(type_)
    if convert is None:
        raise ConfigurationError(f"{what}: unsupported type {type_!r}")
    try:
        return convert(str(value))
    except ValueError as e:
        raise UsageError(f"invalid value {value!r} for {what}: expected {type_name(type_)}") from e


def type_name(type_: type) -> str:
    if type_ is str:
        return "string"
    if type_ is Path:
        return "path"
    return getattr(type_, "__name__", str(type_)).lower()


# =============================================================================
# Option Descriptor
# =============================================================================


class Option:
    """A named configuration value of a target owner."""

    def __init__(
        self,
        type_: type = str,
        description: str = "",
        default: Any = None,
        short: Optional[str] = None,
        name: Optional[str] = None,
    ):
        if not is_supported_type(type_):
            raise ConfigurationError(f"unsupported option type {type_!r}")
        if short is not None and len(short) != 1:
            raise ConfigurationError(f"short flag must be a single character, got {short!r}")
        if type_ is bool and default is None:
            default = False
        self.type = type_
        self.description = description
        self.default = default
        self.short = short
        self.name = name or ""
        self.attribute = (name or "").replace("-", "_")

    def __set_name__(self, owner: type, attribute: str) -> None:
        self.attribute = attribute
        if not self.name:
            self.name = cli_name(attribute)

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.attribute, self.default)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.attribute] = value

    def __repr__(self) -> str:
        return f"Option({self.name!r}, {type_name(self.type)})"

    @property
    def is_flag(self) -> bool:
        return self.type is bool

    @property
    def metavar(self) -> str:
        return f"<{type_name(self.type)}>"

    def coerce(self, value: Any) -> Any:
        return coerce(self.type, value, f"--{self.name}")

    def flags(self) -> str:
        """Left column of the help option table."""
        if self.is_flag:
            long = f"--{self.name}"
            return f"-{self.short} | {long}" if self.short else long
        long = f"--{self.name}={self.metavar}"
        return f"-{self.short}{self.metavar} | {long}" if self.short else long

    def help(self) -> str:
        """Right column of the help option table."""
        if isinstance(self.type, type) and issubclass(self.type, Enum):
            values = "|".join(member.name.lower() for member in self.type)
            return f"{self.description} {type_name(self.type)}={values}".strip()
        return self.description


# =============================================================================
# Built-in Options
# =============================================================================

HELP = Option(bool, "Show help and exit", short="h", name="help")
VERBOSITY = Option(
    Verbosity,
    "Set the verbosity level.",
    default=Verbosity.NORMAL,
    short="v",
    name="verbosity",
)
NO_COLOR = Option(bool, "Disable colored output", name="no-color")

BUILTIN_OPTIONS = (HELP, VERBOSITY, NO_COLOR)
RESERVED_NAMES = {normalize(option.name) for option in BUILTIN_OPTIONS}
RESERVED_SHORTS = {option.short for option in BUILTIN_OPTIONS if option.short}
