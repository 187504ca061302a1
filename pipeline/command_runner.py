"""External command wrapper.

This module defines :class:`CommandRunner`, a thin wrapper around
``subprocess.run`` used by every stage that shells out (pip, apt-get,
cmake, make, git, ldconfig).  It hides three details from the stages:

* where the output goes: inherited by the console (long builds), captured
  in memory (probes), or written to a log file (``cmake.log``);
* whether the command really runs: in dry-run mode the command is only
  logged and reported as successful;
* checking the exit status: a non-zero status raises
  :class:`~pipeline.errors.CommandFailed` unless ``check=False``.

Each call returns a :class:`CommandResult` and is appended to
:attr:`CommandRunner.history`.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

from .errors import CommandFailed

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    output: str = ""
    log_path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Run external commands with checked results.

    Parameters
    ----------
    dry_run : bool, optional
        When true, commands are logged but never executed.
    env : Mapping[str, str], optional
        Extra environment variables layered over ``os.environ``.
    """

    def __init__(self, dry_run: bool = False, env: Optional[Mapping[str, str]] = None) -> None:
        self.dry_run = dry_run
        self.env = dict(env or {})
        self.history: List[CommandResult] = []

    def run(
        self,
        args: Sequence[Union[str, PathLike]],
        *,
        cwd: Optional[PathLike] = None,
        log_path: Optional[PathLike] = None,
        capture: bool = False,
        check: bool = True,
    ) -> CommandResult:
        """Run ``args`` and return its result.

        ``log_path`` sends stdout and stderr to that file (overwritten);
        ``capture`` keeps them in :attr:`CommandResult.output` instead.
        With neither, the command writes straight to the console.
        """
        argv = [os.fspath(a) for a in args]
        log_file = os.fspath(log_path) if log_path is not None else None
        printable = " ".join(shlex.quote(a) for a in argv)
        if self.dry_run:
            LOGGER.info("[dry-run] %s%s", printable, f" (cwd={os.fspath(cwd)})" if cwd else "")
            result = CommandResult(args=argv, returncode=0, log_path=log_file)
            self.history.append(result)
            return result

        LOGGER.debug("Running %s", printable)
        env = None
        if self.env:
            env = dict(os.environ)
            env.update(self.env)
        try:
            if log_file is not None:
                with open(log_file, "w", encoding="utf-8") as f:
                    cp = subprocess.run(argv, cwd=cwd, env=env, stdout=f, stderr=subprocess.STDOUT, check=False)
                output = ""
            elif capture:
                cp = subprocess.run(argv, cwd=cwd, env=env, capture_output=True, text=True, check=False)
                output = (cp.stdout or "") + (cp.stderr or "")
            else:
                cp = subprocess.run(argv, cwd=cwd, env=env, check=False)
                output = ""
        except FileNotFoundError:
            LOGGER.error("Executable not found: %s", argv[0])
            result = CommandResult(args=argv, returncode=127, log_path=log_file)
            self.history.append(result)
            if check:
                raise CommandFailed(argv, 127, log_file)
            return result

        result = CommandResult(args=argv, returncode=cp.returncode, output=output, log_path=log_file)
        self.history.append(result)
        if check and not result.ok:
            raise CommandFailed(argv, cp.returncode, log_file)
        return result
