"""External tool runner.

Every packaging tool (``iscc``, ``candle``, ``pkgbuild``, ``dpkg-deb`` ...)
is started through a :class:`ToolRunner`.  Bundlers receive the runner by
injection so tests can substitute a recording fake.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from nativepack.core.errors import ToolExecutionError
from nativepack.models.build import ExecResult

logger = logging.getLogger(__name__)

# Exit status a POSIX shell reports for "command not found".
COMMAND_NOT_FOUND = 127


class ToolRunner:
    """Runs external commands and drains their output into the log.

    Parameters
    ----------
    echo:
        Log tool output at INFO instead of DEBUG.
    timeout:
        Default timeout in seconds; ``None`` blocks until the tool exits.
    """

    def __init__(self, *, echo: bool = False, timeout: float | None = None) -> None:
        self.echo = echo
        self.timeout = timeout

    def run(
        self,
        command: Sequence[str | Path],
        cwd: Path | None = None,
        *,
        probe_only: bool = False,
        timeout: float | None = None,
    ) -> ExecResult:
        """Run *command* with stderr merged into stdout.

        A non-zero exit raises :class:`ToolExecutionError`.  With
        ``probe_only`` the call only checks the tool is present: any exit
        status except 127 is returned instead of raised.
        """
        args = [str(part) for part in command]
        where = str(Path(cwd).absolute()) if cwd is not None else None
        logger.info("Running %s%s", args, f" in {where}" if where else "")

        try:
            proc = subprocess.Popen(
                args,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ToolExecutionError(args, COMMAND_NOT_FOUND, str(exc), cwd=where) from exc

        lines: list[str] = []
        level = logging.INFO if self.echo else logging.DEBUG
        reader = threading.Thread(
            target=_drain, args=(proc.stdout, lines, level), daemon=True
        )
        reader.start()

        limit = timeout if timeout is not None else self.timeout
        try:
            exit_code = proc.wait(timeout=limit)
        except subprocess.TimeoutExpired as exc:
            proc.kill()
            proc.wait()
            reader.join()
            logger.error("%s timed out after %s seconds", args[0], limit)
            raise ToolExecutionError(
                args, proc.returncode, "\n".join(lines), cwd=where
            ) from exc
        reader.join()

        output = "\n".join(lines)
        if exit_code != 0 and not (probe_only and exit_code != COMMAND_NOT_FOUND):
            raise ToolExecutionError(args, exit_code, output, cwd=where)
        return ExecResult(command=args, exit_code=exit_code, output=output)

    def process_output(self, args: Sequence[str | Path]) -> tuple[int, list[str]]:
        """Run *args* and collect stdout lines; stderr lines are logged as errors."""
        argv = [str(part) for part in args]
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ToolExecutionError(argv, COMMAND_NOT_FOUND, str(exc)) from exc

        stderr_thread = threading.Thread(
            target=_drain, args=(proc.stderr, None, logging.ERROR), daemon=True
        )
        stderr_thread.start()
        lines = [line.rstrip("\r\n") for line in proc.stdout]
        exit_code = proc.wait(timeout=self.timeout)
        stderr_thread.join()
        return exit_code, lines


def _drain(stream: IO[str], sink: list[str] | None, level: int) -> None:
    for raw in stream:
        line = raw.rstrip("\r\n")
        if sink is not None:
            sink.append(line)
        logger.log(level, "%s", line)
    stream.close()
