"""Shell prompt detection over a pod's terminal output.

The heuristics are approximate. Only the common bash shapes are
recognised:

    user@host:/some/dir$
    [user@host /some/dir]#

A shell whose prompt never matches stays "not ready" and keeps ``~`` as
its working directory.
"""

from __future__ import annotations

import re

DEFAULT_CWD = "~"
MAX_PROMPT_LINE = 256

# Color, cursor and window-title escapes that prompts commonly carry.
ANSI_ESCAPE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")

PROMPT_END = re.compile(r"[\$#] ?$")

CWD_PATTERNS = (
    re.compile(r":([~/][^\s\$#\r\n:]*?)[\$#](?:\s|$)"),
    re.compile(r"\s([~/][^\s\$#\]]*?)\][\$#]"),
)


def extract_cwd(line: str) -> str | None:
    """Working directory from a prompt line, or None if no shape matches."""
    found: tuple[int, str] | None = None
    for pattern in CWD_PATTERNS:
        for match in pattern.finditer(line):
            if found is None or match.start() >= found[0]:
                found = (match.start(), match.group(1))
    return found[1] if found else None


class PromptTracker:
    """Track prompt readiness and working directory of one shell session.

    Keeps only the last ``buffer_size`` bytes of output. A prompt counts
    only when it ends the buffered output, on a line no longer than
    :data:`MAX_PROMPT_LINE`; this keeps ``$`` and ``#`` inside command
    output from marking the shell ready.
    """

    def __init__(self, buffer_size: int = 500) -> None:
        self._buffer_size = buffer_size
        self._buffer = bytearray()
        self.ready = False
        self.cwd = DEFAULT_CWD

    @property
    def buffered(self) -> bytes:
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> bool:
        """Append output and re-check for a prompt.

        Returns:
            True if the chunk completed a prompt.
        """
        self._buffer += chunk
        if len(self._buffer) > self._buffer_size:
            del self._buffer[: len(self._buffer) - self._buffer_size]

        if b"$" not in chunk and b"#" not in chunk:
            return False

        text = ANSI_ESCAPE.sub("", self._buffer.decode("utf-8", errors="replace"))
        line = re.split(r"[\r\n]", text)[-1]
        if len(line) > MAX_PROMPT_LINE or not PROMPT_END.search(line):
            return False

        self.ready = True
        cwd = extract_cwd(line)
        if cwd:
            self.cwd = cwd
        return True
