"""
External process runner for build targets.

A ``Tool`` is an immutable description of a command line; ``await tool.run()``
starts the process, streams its output to the log at detailed verbosity and
returns the captured result. A non-zero exit code raises ``ToolError`` unless
the tool was configured with ``do_not_check_exit_code()``.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from oncebuild.core.utils import log
from oncebuild.errors import ToolError

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one process run."""

    command: tuple[str, ...]
    exit_code: int
    output: str
    error: str

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class LineWriter:
    """Text sink that calls ``action`` once per complete line.

    A trailing partial line is delivered by ``flush()``.
    """

    def __init__(self, action: Callable[[str], Any]):
        self._action = action
        self._buffer = ""

    def write(self, text: str) -> int:
        self._buffer += text
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self._action(line.rstrip("\r"))
        return len(text)

    def flush(self) -> None:
        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._action(line)


@dataclass(frozen=True)
class Tool:
    """A command line tool with preset arguments, working directory and environment."""

    command: str
    arguments: tuple[str, ...] = ()
    working_directory: Optional[Path] = None
    environment: tuple[tuple[str, str], ...] = field(default=())
    check_exit_code: bool = True

    def with_arguments(self, *args: Union[str, Path]) -> "Tool":
        return replace(self, arguments=self.arguments + tuple(str(a) for a in args))

    def with_working_directory(self, directory: Union[str, Path]) -> "Tool":
        return replace(self, working_directory=Path(directory))

    def with_environment(self, environment: Mapping[str, str]) -> "Tool":
        merged = dict(self.environment)
        merged.update(environment)
        return replace(self, environment=tuple(sorted(merged.items())))

    def do_not_check_exit_code(self) -> "Tool":
        return replace(self, check_exit_code=False)

    async def run(self, *args: Union[str, Path]) -> ToolResult:
        """Run the tool with additional ``args``.

        Raises:
            ToolError: If the command cannot be started, or exits non-zero
                while exit codes are checked.
        """
        argv = (self.command, *self.arguments, *(str(a) for a in args))
        command_line = shlex.join(argv)
        env = None
        if self.environment:
            env = {**os.environ, **dict(self.environment)}

        log.dim(f"> {command_line}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.working_directory,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolError(f"{command_line}: cannot start {self.command}: {e}") from e

        assert process.stdout is not None and process.stderr is not None
        output, error = await asyncio.gather(
            _pump(process.stdout, lambda line: log.dim(f"  {line}")),
            _pump(process.stderr, lambda line: log.dim(f"  ! {line}")),
        )
        exit_code = await process.wait()

        result = ToolResult(command=argv, exit_code=exit_code, output=output, error=error)
        if self.check_exit_code and exit_code != 0:
            raise ToolError.from_result(result)
        return result


async def _pump(stream: asyncio.StreamReader, on_line: Callable[[str], Any]) -> str:
    """Read ``stream`` to the end, echoing complete lines; returns the whole text."""
    chunks: list[str] = []
    writer = LineWriter(on_line)
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(_READ_CHUNK)
        text = decoder.decode(data, final=not data)
        if text:
            chunks.append(text)
            writer.write(text)
        if not data:
            break
    writer.flush()
    return "".join(chunks)


async def run_process(command: str, *args: Union[str, Path]) -> ToolResult:
    """Run ``command`` with ``args``; shorthand for ``Tool(command).run(*args)``."""
    return await Tool(command).run(*args)
