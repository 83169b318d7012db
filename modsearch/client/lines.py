"""Incremental newline framing for streamed text."""


class FrameLineBuffer:
    """Splits arbitrarily chunked text into complete lines.

    A chunk may end mid-line or hold several lines; the incomplete tail is
    kept and prefixed to the next chunk.
    """

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> list[str]:
        """Add ``chunk`` and return every non-blank line it completed."""
        if not chunk:
            return []
        lines = (self._pending + chunk).split("\n")
        self._pending = lines.pop()
        return [line for line in lines if line.strip()]

    def flush(self) -> list[str]:
        """Return the unterminated tail, if any, once the stream has ended."""
        tail, self._pending = self._pending, ""
        return [tail] if tail.strip() else []
