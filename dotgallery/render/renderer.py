"""Adapter around the external graph renderer (Graphviz ``dot`` by default)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from ..config import DEFAULT_COMMAND
from ..logging import get_logger


class RenderError(RuntimeError):
    """Raised when the renderer process cannot produce an image."""


@dataclass
class RenderRequest:
    """Represents one description-file-to-image conversion."""

    source: Path
    target: Path
    executable: str
    format: str
    command: Sequence[str]

    def argv(self) -> list[str]:
        values = {
            "executable": self.executable,
            "format": self.format,
            "source": str(self.source),
            "target": str(self.target),
        }
        return [part.format(**values) for part in self.command]


@dataclass(frozen=True)
class RenderResult:
    """Outcome of a render attempt; failures are reported, never raised."""

    source: Path
    target: Path
    success: bool
    message: str = ""


class GraphRenderer:
    """Turns one description file into one image by spawning the renderer."""

    def __init__(
        self,
        executable: str = "dot",
        *,
        format: str = "svg",
        command: Optional[Sequence[str]] = None,
        runner: Callable[[RenderRequest], Awaitable[None]] | None = None,
    ) -> None:
        self.executable = executable
        self.format = format
        self.command = list(command) if command else list(DEFAULT_COMMAND)
        self._runner = runner or self._subprocess_runner
        self.logger = get_logger("render.renderer")

    async def render(self, source: Path, target: Path) -> RenderResult:
        """Render ``source`` into ``target``; cancellation stops the renderer."""
        request = RenderRequest(
            source=source,
            target=target,
            executable=self.executable,
            format=self.format,
            command=self.command,
        )
        try:
            await self._runner(request)
        except RenderError as exc:
            self.logger.warning("Rendering %s failed: %s", source.name, exc)
            return RenderResult(source=source, target=target, success=False, message=str(exc))
        self.logger.debug("Rendered %s -> %s", source.name, target.name)
        return RenderResult(source=source, target=target, success=True)

    @staticmethod
    async def _subprocess_runner(request: RenderRequest) -> None:
        args = request.argv()
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise RenderError(
                f"Unable to locate '{args[0]}'. Install Graphviz or configure renderer.executable."
            ) from exc
        except OSError as exc:
            raise RenderError(f"Unable to start '{args[0]}': {exc}") from exc

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
            raise RenderError(
                f"renderer exited with code {process.returncode}" + (f": {detail}" if detail else "")
            )


__all__ = ["GraphRenderer", "RenderError", "RenderRequest", "RenderResult"]
