"""Running the openssl command line tool."""

import logging
import os
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from certfixtures.paths import PathSpec

logger = logging.getLogger(f"certfixtures.{__name__}")

# exit status used when the command could not be started at all
SPAWN_FAILURE = 127


@dataclass(frozen=True)
class Flag:
    """An openssl option name, rendered with a single leading dash."""

    name: str

    def __str__(self) -> str:
        return f"-{self.name}"


Argument = str | Flag | PathSpec | os.PathLike[str]


def render_argument(argument: Argument) -> str:
    """Turn a tagged argument into the literal string passed to openssl.

    Flags get their leading dash, file references are resolved to a path
    string and plain strings are passed through unchanged.
    """
    if isinstance(argument, Flag):
        return str(argument)
    if isinstance(argument, (PathSpec, os.PathLike)):
        return PathSpec.resolve_segment(argument)
    if isinstance(argument, str):
        return argument
    raise TypeError(f"Unsupported openssl argument {argument!r}")


@dataclass
class ToolResult:
    """Exit status and captured stderr of one openssl invocation."""

    command: list[str]
    returncode: int
    stderr: bytes = b""


class ToolFailure(Exception):
    """Raised when an openssl invocation exits with a nonzero status."""

    def __init__(self, result: ToolResult) -> None:
        """Keep the command, exit status and the decoded stderr of the failed invocation."""
        self.command = result.command
        self.returncode = result.returncode
        self.stderr = result.stderr.decode("utf-8", errors="replace")
        super().__init__(f"Command {' '.join(self.command)} returned non-zero exit code {self.returncode}")

    @property
    def stderr_lines(self) -> list[str]:
        """The captured stderr split in lines."""
        return self.stderr.splitlines()


class Openssl:
    """Runs the openssl binary, one blocking invocation at a time."""

    def __init__(
        self,
        command: str = "openssl",
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """Remember the command, working directory and environment to use for every invocation.

        Args:
            command: The openssl command, looked up on PATH unless it is a path
            cwd: The working directory for the subprocess. Optional.
            env: The complete environment for the subprocess. Optional.

        Returns:
            None
        """
        self.command = command
        self.cwd = cwd
        self.env = env

    def get_command(self, args: Sequence[Argument]) -> list[str]:
        """Put the openssl command together from ``self.command`` and the rendered arguments."""
        return [*self.command.split(" "), *(render_argument(arg) for arg in args)]

    def run(self, args: Sequence[Argument]) -> ToolResult:
        """Run openssl with the given arguments, raise ToolFailure on nonzero exit code.

        Args:
            args: The openssl subcommand and its arguments

        Returns:
            The ToolResult of the invocation

        Raises:
            ToolFailure: If openssl returned a nonzero exit code
        """
        command = self.get_command(args)
        logger.debug(f"Running openssl command: {command}")
        result = self.execute(command)
        if result.returncode != 0:
            raise ToolFailure(result)
        return result

    def execute(self, command: list[str]) -> ToolResult:
        """Spawn the process and wait for it. Stdout is discarded, stderr is kept.

        A command which can not be started is reported like the shell does, with
        exit code 127 and the error as stderr.
        """
        try:
            p = subprocess.Popen(  # noqa: S603
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
            )
        except OSError as e:
            logger.debug(f"Unable to start openssl command {command}: {e}")
            return ToolResult(command=command, returncode=SPAWN_FAILURE, stderr=str(e).encode())
        with p:
            _, stderr = p.communicate()
        logger.debug(f"openssl command returned exit code {p.returncode} with {len(stderr)} bytes stderr output")
        return ToolResult(command=command, returncode=p.returncode, stderr=stderr)
