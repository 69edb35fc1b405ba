"""Targets for the Python interpreter running the build."""

from __future__ import annotations

import sys

from oncebuild.targets import Targets, target
from oncebuild.tools import Tool


class Python(Targets):
    @target
    async def tool(self) -> Tool:
        """The running interpreter as a tool."""
        return Tool(sys.executable)

    @target
    async def version(self) -> str:
        """Interpreter version, e.g. ``Python 3.12.1``."""
        python = await self.tool()
        return (await python.run("--version")).output.strip()
