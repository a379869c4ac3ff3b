"""External command execution and scoped process state.

Commands run without a shell and with stdin closed. Standard output and
standard error are drained concurrently so that the combined capture keeps
the order in which the child wrote them, while stderr is also captured on
its own for warn classification.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from dependents_tester.types import CommandResult

logger = logging.getLogger(__name__)


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Change the working directory for the duration of the block.

    The previous directory is restored on every exit path.

    Args:
        path: Directory to change into.

    Yields:
        The directory changed into.
    """
    previous = Path.cwd()
    os.chdir(path)
    try:
        yield path
    finally:
        os.chdir(previous)


@contextmanager
def scoped_environ(overrides: Mapping[str, str]) -> Iterator[None]:
    """Apply environment overrides for the duration of the block.

    Keys that did not exist before are removed again on exit.

    Args:
        overrides: Variables to set.
    """
    saved = {key: os.environ.get(key) for key in overrides}
    os.environ.update(overrides)
    try:
        yield
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


def _drain(stream: IO[str], chunks: list[str], combined: list[str], lock: threading.Lock) -> None:
    for line in iter(stream.readline, ""):
        chunks.append(line)
        with lock:
            combined.append(line)
    stream.close()


def run_command(command: list[str], env: Mapping[str, str] | None = None) -> CommandResult:
    """Run a command in the current working directory.

    Failures to execute are captured in the result, never raised.

    Args:
        command: Program and arguments.
        env: Full environment for the child (inherits os.environ if None).

    Returns:
        CommandResult with combined and stderr-only output.
    """
    logger.debug("Running %s in %s", " ".join(command), Path.cwd())
    try:
        proc = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            env=dict(env) if env is not None else None,
        )
    except OSError as e:
        logger.debug("Could not execute %s: %s", command[0], e)
        return CommandResult(command=command, returncode=-1, output=f"{command[0]}: {e}\n")

    combined: list[str] = []
    stdout_chunks: list[str] = []
    stderr_chunks: list[str] = []
    lock = threading.Lock()
    readers = [
        threading.Thread(target=_drain, args=(proc.stdout, stdout_chunks, combined, lock)),
        threading.Thread(target=_drain, args=(proc.stderr, stderr_chunks, combined, lock)),
    ]
    for reader in readers:
        reader.start()
    for reader in readers:
        reader.join()
    returncode = proc.wait()

    logger.debug("%s exited with %d", " ".join(command), returncode)
    return CommandResult(
        command=command,
        returncode=returncode,
        output="".join(combined),
        stderr="".join(stderr_chunks),
    )
