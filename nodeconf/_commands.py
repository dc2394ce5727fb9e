"""Run the external CLI that fronts the settings store.

Children get a copy of the process environment taken at call time; plumbum's
``local.env`` is a snapshot from import time.
"""

from __future__ import annotations

import logging
import os
from collections import abc as cabc
from dataclasses import dataclass

from plumbum import local
from plumbum.commands.processes import (
    CommandNotFound,
    ProcessExecutionError,
    ProcessTimedOut,
)

from ._errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandContext:
    """Execution options for :func:`run_command`."""

    env: cabc.Mapping[str, str] | None = None
    timeout: float | None = None
    source: str | None = None


def run_command(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> str:
    """Execute an external command and return its standard output.

    Raises
    ------
    TransportError
        When the command cannot be found or executed, exits non-zero, or
        times out.

    Examples
    --------
    >>> run_command("printf", "hello")
    'hello'
    """

    ctx = context or CommandContext()
    source = ctx.source or command
    logger.debug("Running %s %s", command, " ".join(args))
    try:
        bound = local[command][list(args)]
        _, stdout, _ = bound.run(
            env=dict(ctx.env) if ctx.env is not None else os.environ.copy(),
            timeout=ctx.timeout,
        )
    except ProcessTimedOut as exc:
        msg = f"{command} {' '.join(args[:2])} timed out after {ctx.timeout}s"
        raise TransportError(msg, source=source) from exc
    except ProcessExecutionError as exc:
        stderr = (exc.stderr or "").strip()
        msg = f"Command {command!r} failed with status {exc.retcode}: {stderr}"
        raise TransportError(msg, source=source) from exc
    except CommandNotFound as exc:
        msg = f"Command {command!r} not found"
        raise TransportError(msg, source=source) from exc
    except OSError as exc:
        msg = f"Command {command!r} could not be executed: {exc}"
        raise TransportError(msg, source=source) from exc
    return stdout


__all__ = ["CommandContext", "run_command"]
