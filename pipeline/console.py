"""Operator console.

The build is long and mostly unattended, but in interactive mode it stops
at a few checkpoints so the operator can look at the GPU probe and the
CMake summary before hours of compilation start.  :class:`OperatorConsole`
is the only place that talks to the terminal directly; in quiet mode
every method is a no-op and nothing ever waits for input.
"""

from __future__ import annotations

import os
import sys
from typing import Callable, Iterable, Optional, TextIO

BORDER = "#" * 82
CONTINUE_PROMPT = "Press Enter to continue, or ctrl-C to stop."


class OperatorConsole:
    """Console output and confirmation prompts.

    Parameters
    ----------
    quiet : bool
        Suppress all output and never prompt.
    stream : TextIO, optional
        Where to write, ``sys.stdout`` by default.
    prompt : Callable[[str], str], optional
        Function used to wait for the operator, ``input`` by default.
    """

    def __init__(
        self,
        quiet: bool,
        stream: Optional[TextIO] = None,
        prompt: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.quiet = quiet
        self.stream = stream or sys.stdout
        self.prompt = prompt or input
        self.checkpoints = 0

    def say(self, *lines: str) -> None:
        if self.quiet:
            return
        for line in lines:
            self.stream.write(line + "\n")
        self.stream.flush()

    def banner(self, lines: Iterable[str]) -> None:
        self.say(BORDER, "", *lines, "", BORDER)

    def show_file(self, path: str) -> None:
        """Print the content of ``path`` between borders."""
        if self.quiet:
            return
        if not os.path.isfile(path):
            self.say(f"({path} not found)")
            return
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            content = f.read()
        self.say(BORDER, "", content.rstrip("\n"), "", BORDER)

    def checkpoint(self, *lines: str) -> None:
        """Show ``lines`` and wait for the operator to confirm."""
        if self.quiet:
            return
        self.say(*lines, CONTINUE_PROMPT)
        self.checkpoints += 1
        self.prompt("")
