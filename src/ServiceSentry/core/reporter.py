# -*- coding: utf-8 -*-

"""

@author: Will D

"""

# This is the reporter module. This module will allow the application to:

# 1. Color status lines for the terminal (and turn colors off when asked)

# 2. Print tagged status lines: info, warning, success, failure

# 3. Keep a transcript file with every line we printed

# 4. Remember every line so it can go into the final report

from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, TextIO, Tuple

###########################################################################

"""

Name: Palette

Function: ANSI escape codes for the colors we use.

Arguments: None (it's a class with constants)

Returns: No value returned

"""

class Palette:
    ### Red - failures, the things that didn't get fixed
    RED = "\033[91m"
    ### Yellow - warnings, an insecure grant we just found
    YELLOW = "\033[93m"
    ### Green - success, a grant removed or a clean path
    GREEN = "\033[92m"
    ### Blue - spare, nothing uses it by default
    BLUE = "\033[94m"
    ### Cyan - informational lines
    CYAN = "\033[96m"
    ### Magenta - headings and the banner
    MAGENTA = "\033[95m"
    ### Bold - make things stand out
    BOLD = "\033[1m"
    ### Dim - make things quieter
    DIM = "\033[2m"
    ### Reset - back to plain text
    RESET = "\033[0m"

#$ End Palette

def supports_color(stream: object = sys.stdout) -> bool:
    ### Windows 10+ consoles understand ANSI codes, "dumb" terminals don't
    return hasattr(stream, "isatty") and stream.isatty() and os.environ.get("TERM", "") != "dumb"

### Decide once at import time, --no-color can still turn it off
ENABLE_COLOR = supports_color()

def apply_color(text: str, *codes: str) -> str:
    ### Nothing to color, or colors are off
    if not text or not ENABLE_COLOR:
        return text
    ### Wrap the text in the codes and reset at the end
    return "".join(codes) + text + Palette.RESET

def set_color_enabled(enabled: bool) -> None:
    ### Flip the module-wide switch
    global ENABLE_COLOR
    ENABLE_COLOR = enabled

### Status tag -> (prefix, colors)
STATUS_STYLES = {
    "info": ("[*]", (Palette.CYAN,)),
    "warning": ("[!]", (Palette.YELLOW,)),
    "success": ("[+]", (Palette.GREEN,)),
    "failure": ("[-]", (Palette.RED, Palette.BOLD)),
    "heading": ("", (Palette.MAGENTA, Palette.BOLD)),
}

###########################################################################

"""

Name: Reporter

Function: The sink for every status line the engine produces. It prints to

the console (unless quiet), copies the line into the transcript file (if

there is one) and remembers it for the report.

Arguments: quiet - don't print anything to the console

            transcript - optional path of a transcript file to append to

            stream - where console lines go (defaults to stdout)

Returns: No value returned

"""

class Reporter:
    def __init__(self, quiet: bool = False, transcript: Path | None = None, stream: TextIO | None = None) -> None:
        ### Quiet means the console gets nothing, the transcript still does
        self.quiet = quiet
        self.stream = stream
        ### Every (tag, text) pair emitted so far, in order
        self.lines: List[Tuple[str, str]] = []
        self._transcript: TextIO | None = None
        ### Append to the transcript, earlier runs stay in the file
        if transcript is not None:
            transcript.parent.mkdir(parents=True, exist_ok=True)
            self._transcript = transcript.open("a", encoding="utf-8")
            self._write_transcript(f"Transcript started {datetime.now().isoformat(timespec='seconds')}")

#$ End __init__

    ###########################################################################

    """

    Name: emit

    Function: Send one tagged line to every destination.

    Arguments: tag - one of info, warning, success, failure, heading

                text - the message

                indent - how many levels to indent the console line

    Returns: No value returned

    """

    def emit(self, tag: str, text: str, indent: int = 0) -> None:
        ### Look up the prefix and colors for this tag
        prefix, codes = STATUS_STYLES.get(tag, ("", ()))
        ### The uncolored line, which is what the transcript gets
        plain = f"{'    ' * indent}{prefix} {text}" if prefix else f"{'    ' * indent}{text}"
        self.lines.append((tag, text))
        ### The transcript gets the line even when quiet
        self._write_transcript(plain)
        if self.quiet:
            return
        ### Colored copy for the console
        print(apply_color(plain, *codes), file=self.stream or sys.stdout)

#$ End emit

    def info(self, text: str, indent: int = 0) -> None:
        self.emit("info", text, indent)

    def warning(self, text: str, indent: int = 0) -> None:
        self.emit("warning", text, indent)

    def success(self, text: str, indent: int = 0) -> None:
        self.emit("success", text, indent)

    def failure(self, text: str, indent: int = 0) -> None:
        self.emit("failure", text, indent)

    def heading(self, text: str, indent: int = 0) -> None:
        self.emit("heading", text, indent)

    def close(self) -> None:
        ### Stamp the end of the run and close the file
        if self._transcript is not None:
            self._write_transcript(f"Transcript stopped {datetime.now().isoformat(timespec='seconds')}")
            self._transcript.close()
            self._transcript = None

    def _write_transcript(self, line: str) -> None:
        if self._transcript is None:
            return
        self._transcript.write(line + "\n")
        ### Flush after every line
        self._transcript.flush()

    def __enter__(self) -> "Reporter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

#$ End Reporter
