"""
Command-line dispatcher for build programs.

Maps an argument vector onto a target owner: positional tokens select targets
(in order, abbreviations allowed), option tokens bind declared configuration
values before any target runs. The outcome is mapped to a process exit code.

Usage from a build program::

    if __name__ == "__main__":
        sys.exit(oncebuild.run(BuildTargets))
"""

from __future__ import annotations

import asyncio
import sys
import time
import traceback
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Optional, Sequence

from oncebuild.config import RunConfig, load_option_defaults
from oncebuild.context import RunContext
from oncebuild.core.timing import format_duration, slowest
from oncebuild.core.utils import Verbosity, configure_logging, format_table, log
from oncebuild.errors import (
    ConfigurationError,
    OnceBuildError,
    UsageError,
    describe_failure,
)
from oncebuild.naming import find_by_name, normalize
from oncebuild.options import BUILTIN_OPTIONS, HELP, Option, coerce, type_name
from oncebuild.rebuild import REBUILD_NOTICE, requires_rebuild
from oncebuild.targets import NO_INPUT, TargetDescriptor, Targets


# =============================================================================
# Exit Codes
# =============================================================================


class ExitCode(IntEnum):
    SUCCESS = 0
    HELP_SHOWN = 1
    REBUILD_REQUIRED = 2
    USAGE_ERROR = 3
    TARGET_FAILED = 4


# =============================================================================
# Parsed Invocation
# =============================================================================


@dataclass(frozen=True)
class TargetCall:
    """A selected target and the input bound to it (``NO_INPUT`` if none)."""

    descriptor: TargetDescriptor
    input: Any = NO_INPUT


@dataclass(frozen=True)
class OptionBinding:
    option: Option
    value: Any

    @property
    def is_builtin(self) -> bool:
        return self.option in BUILTIN_OPTIONS


@dataclass
class ParsedInvocation:
    calls: list[TargetCall] = field(default_factory=list)
    bindings: list[OptionBinding] = field(default_factory=list)
    help_requested: bool = False


def _all_options(owner_type: type[Targets]) -> list[Option]:
    return owner_type.options() + list(BUILTIN_OPTIONS)


def _find_short(options: list[Option], short: str) -> Option:
    for option in options:
        if option.short == short:
            return option
    raise UsageError(f'"-{short}" is not a known option')


def _is_negative_number(options: list[Option], token: str) -> bool:
    """``-3`` is a value unless some option claims ``-3`` as its short flag."""
    return token[1:].isdigit() and not any(o.short == token[1] for o in options)


def _names_target(targets: list[TargetDescriptor], token: str) -> bool:
    try:
        find_by_name(targets, token, name=lambda d: d.name, allow_substring=True)
    except UsageError:
        return False
    return True


def parse_args(owner_type: type[Targets], argv: Sequence[str]) -> ParsedInvocation:
    """Parse ``argv`` into target calls and option bindings.

    Raises:
        UsageError: Unknown or ambiguous target or option, missing value.
        ConfigurationError: No target selected and the owner has no default.
    """
    argv = list(argv)
    head = argv[: argv.index("--")] if "--" in argv else argv
    if any(token in ("-h", "--help") for token in head):
        return ParsedInvocation(help_requested=True)

    options = _all_options(owner_type)
    bindings: list[OptionBinding] = []
    positionals: list[str] = []
    only_positionals = False

    i = 0
    while i < len(argv):
        token = argv[i]
        i += 1
        if (
            only_positionals
            or token == "-"
            or not token.startswith("-")
            or _is_negative_number(options, token)
        ):
            positionals.append(token)
            continue
        if token == "--":
            only_positionals = True
            continue

        if token.startswith("--"):
            name, has_value, value = token[2:].partition("=")
            option = find_by_name(options, name, name=lambda o: o.name, items_name="options")
        else:
            option = _find_short(options, token[1])
            value = token[2:]
            has_value = bool(value)

        if option is HELP:
            return ParsedInvocation(help_requested=True)
        if not has_value:
            if option.is_flag:
                value = "true"
            elif i < len(argv):
                value = argv[i]
                i += 1
            else:
                raise UsageError(f"option --{option.name} requires a value {option.metavar}")
        bindings.append(OptionBinding(option, option.coerce(value)))

    return ParsedInvocation(calls=_resolve_targets(owner_type, positionals), bindings=bindings)


def _resolve_targets(owner_type: type[Targets], tokens: list[str]) -> list[TargetCall]:
    targets = owner_type.public_targets()
    calls: list[TargetCall] = []

    i = 0
    while i < len(tokens):
        descriptor = find_by_name(
            targets,
            tokens[i],
            name=lambda d: d.name,
            items_name="targets",
            allow_substring=True,
        )
        i += 1
        value: Any = NO_INPUT
        if descriptor.takes_input:
            assert descriptor.input_type is not None
            optional = descriptor.has_default_input
            if i < len(tokens) and not (optional and _names_target(targets, tokens[i])):
                value = coerce(descriptor.input_type, tokens[i], f"input of {descriptor.name}")
                i += 1
            elif not optional:
                raise UsageError(
                    f"target {descriptor.name} requires an input <{type_name(descriptor.input_type)}>"
                )
        calls.append(TargetCall(descriptor, value))

    if not calls:
        calls.append(TargetCall(owner_type.default_target()))
    return calls


# =============================================================================
# Help
# =============================================================================


def render_help(owner_type: type[Targets], program: str = "build") -> str:
    """Usage line, target table and option table."""
    target_rows = []
    for d in owner_type.public_targets():
        name = f"{d.name} <{type_name(d.input_type)}>" if d.input_type is not None else d.name
        description = f"{d.description} (default)" if d.is_default else d.description
        target_rows.append((name, description.strip()))
    option_rows = [(option.flags(), option.help()) for option in _all_options(owner_type)]

    return (
        f"Usage: {program} <targets> [options]\n"
        "\n"
        "Targets:\n"
        f"{format_table(target_rows)}\n"
        "\n"
        "Options:\n"
        f"{format_table(option_rows)}\n"
    )


# =============================================================================
# Binding
# =============================================================================


def apply_option_defaults(
    owner: Targets,
    config: RunConfig,
    defaults: dict[str, Any],
    source: Path,
) -> None:
    """Apply values from an option defaults file; unknown names are an error."""
    options = [o for o in _all_options(type(owner)) if o is not HELP]
    for key, value in defaults.items():
        matches = [o for o in options if normalize(o.name) == normalize(key)]
        if not matches:
            raise ConfigurationError(f"{source}: unknown option {key!r}")
        option = matches[0]
        try:
            coerced = option.coerce(value)
        except UsageError as e:
            raise ConfigurationError(f"{source}: {e}") from e
        apply_binding(owner, config, OptionBinding(option, coerced))


def apply_binding(owner: Targets, config: RunConfig, binding: OptionBinding) -> None:
    sink: Any = config if binding.is_builtin else owner
    setattr(sink, binding.option.attribute, binding.value)


# =============================================================================
# Execution
# =============================================================================


async def execute(owner: Targets, calls: Sequence[TargetCall]) -> list[Any]:
    """Run the selected targets in order; stop at the first failure.

    On failure the run is aborted: invocations still in flight finish, no new
    one starts, then the failure is re-raised.
    """
    results = []
    try:
        for call in calls:
            results.append(await owner._invoke(call.descriptor.attribute, call.input))
    except OnceBuildError as e:
        owner.context.abort(e)
        await owner.context.drain()
        raise
    return results


async def run_targets(owner: Targets, argv: Sequence[str] = ()) -> list[Any]:
    """Parse ``argv`` against ``owner`` and run the selected targets.

    Unlike ``run()``, errors propagate as exceptions instead of exit codes.
    """
    parsed = parse_args(type(owner), argv)
    if parsed.help_requested:
        print(render_help(type(owner), owner.context.config.program), end="")
        return []
    for binding in parsed.bindings:
        apply_binding(owner, owner.context.config, binding)
    return await execute(owner, parsed.calls)


def _use_color(config: RunConfig) -> bool:
    return not config.no_color and sys.stdout.isatty()


def _usage_error(owner_type: type[Targets], config: RunConfig, error: Exception) -> int:
    log.error(str(error).rstrip())
    print()
    print(render_help(owner_type, config.program), end="")
    return ExitCode.USAGE_ERROR


def run(
    owner_type: type[Targets],
    argv: Optional[Sequence[str]] = None,
    *,
    config: Optional[RunConfig] = None,
    artifact: Optional[Path] = None,
    source_dir: Optional[Path] = None,
    program: Optional[str] = None,
) -> int:
    """Run a build program's command line and return the process exit code.

    ``artifact`` and ``source_dir`` enable the self-rebuild check; by default
    they come from the environment set up by the bootstrap launcher.
    """
    if argv is None:
        argv = sys.argv[1:]
    if config is None:
        config = RunConfig.from_environment(
            artifact=artifact,
            source_dir=source_dir,
            program=program,
        )
    with log.configured(config.verbosity, _use_color(config)):
        return _run(owner_type, list(argv), config)


def _run(owner_type: type[Targets], argv: list[str], config: RunConfig) -> int:
    if requires_rebuild(config):
        log.warning(REBUILD_NOTICE)
        return ExitCode.REBUILD_REQUIRED

    try:
        parsed = parse_args(owner_type, argv)
    except (UsageError, ConfigurationError) as e:
        return _usage_error(owner_type, config, e)

    if parsed.help_requested:
        print(render_help(owner_type, config.program), end="")
        return ExitCode.HELP_SHOWN

    owner = owner_type()
    RunContext(config).adopt(owner)
    try:
        defaults_file = config.find_defaults_file()
        if defaults_file is not None:
            apply_option_defaults(owner, config, load_option_defaults(defaults_file), defaults_file)
        for binding in parsed.bindings:
            apply_binding(owner, config, binding)
    except (UsageError, ConfigurationError) as e:
        return _usage_error(owner_type, config, e)

    log.set_verbosity(config.verbosity)
    log.set_color(_use_color(config))
    configure_logging(config.verbosity)

    start = time.monotonic()
    try:
        results = asyncio.run(execute(owner, parsed.calls))
    except OnceBuildError as e:
        log.error(describe_failure(e))
        if log.enabled(Verbosity.DETAILED):
            print("".join(traceback.format_exception(e)), end="")
        return ExitCode.TARGET_FAILED

    for call, result in zip(parsed.calls, results):
        if result is not None:
            log.info(f"{call.descriptor.name}: {result}")
    if log.enabled(Verbosity.DETAILED):
        log.header("Timings")
        for key, duration in slowest(owner.context.timings):
            log.table_row(key, duration)
    log.success(f"Build succeeded in {format_duration(time.monotonic() - start)}")
    return ExitCode.SUCCESS
