from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

MARKER = "E225"
FRAME_HEX_LENGTH = 4128
FRAME_BYTES = FRAME_HEX_LENGTH // 2

_HEX_DIGITS = b"0123456789ABCDEFabcdef"
_NON_HEX = bytes(value for value in range(256) if value not in _HEX_DIGITS)


def _clean(chunk: str | bytes) -> str:
    if isinstance(chunk, str):
        chunk = chunk.encode("ascii", errors="ignore")
    return bytes(chunk).translate(None, _NON_HEX).decode("ascii").upper()


class FrameDecoder:
    """
    Streaming decoder for the ASCII-hex telemetry capture format.

    Input chunks may wrap lines anywhere and carry arbitrary non-hex noise;
    only hex digits are kept. A frame is the FRAME_HEX_LENGTH characters that
    start at an `E225` marker (matched case-insensitively). Text before a
    marker is discarded and an incomplete frame is held back until more input
    arrives or the stream ends.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._stats: Dict[str, int] = {
            "frames": 0,
            "ignored_chars": 0,
            "discarded_chars": 0,
            "truncated_frames": 0,
        }
        self._log = logging.getLogger(__name__)

    def feed(self, chunk: str | bytes, *, final: bool = False) -> List[str]:
        """Append *chunk* and return every frame completed by it."""

        if chunk:
            cleaned = _clean(chunk)
            self._stats["ignored_chars"] += len(chunk) - len(cleaned)
            self._buffer += cleaned
        frames = self._extract_frames()
        if final:
            self.finish()
        return frames

    def iter_frames(self, chunks: Iterable[str] | Iterable[bytes]) -> Iterator[str]:
        for chunk in chunks:
            if not chunk:
                continue
            yield from self.feed(chunk)
        self.finish()

    def finish(self) -> None:
        """Drop whatever is left at end of stream; partial frames are never emitted."""

        remainder = len(self._buffer)
        if remainder:
            if self._buffer.startswith(MARKER):
                self._stats["truncated_frames"] += 1
                self._log.debug(
                    "Discarding truncated frame (%d of %d hex chars)", remainder, FRAME_HEX_LENGTH
                )
            else:
                self._stats["discarded_chars"] += remainder
        self._buffer = ""

    def _extract_frames(self) -> List[str]:
        buf = self._buffer
        frames: List[str] = []
        pos = 0
        while True:
            start = buf.find(MARKER, pos)
            if start < 0:
                # keep just enough to complete a marker split across chunks
                keep_from = max(len(buf) - (len(MARKER) - 1), pos)
                self._stats["discarded_chars"] += keep_from - pos
                pos = keep_from
                break
            if start > pos:
                self._stats["discarded_chars"] += start - pos
                self._log.debug("Skipping %d hex chars before marker", start - pos)
            end = start + FRAME_HEX_LENGTH
            if len(buf) < end:
                pos = start
                break
            frames.append(buf[start:end])
            self._stats["frames"] += 1
            pos = end
        self._buffer = buf[pos:]
        return frames

    def pending(self) -> int:
        return len(self._buffer)

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def reset(self) -> None:
        self._buffer = ""
        for key in self._stats:
            self._stats[key] = 0


def iterate_stream(handle: Any, chunk_size: int = 1 << 16) -> Iterator[str | bytes]:
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            break
        yield chunk


@dataclass
class HeaderValidationResult:
    is_valid: bool
    error_message: Optional[str] = None
    error_line: int = 0
    error_content: Optional[str] = None
    first_header: Optional[str] = None


def validate_header(lines: Iterable[str]) -> HeaderValidationResult:
    """Check that every non-empty line of a line-oriented capture starts with `E225`."""

    first_header: Optional[str] = None
    line_number = 0
    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line:
            continue
        if not line.startswith(MARKER):
            return HeaderValidationResult(
                is_valid=False,
                error_message=f"Header INCORRECT at line {line_number}",
                error_line=line_number,
                error_content=line,
            )
        if first_header is None:
            first_header = line
    if line_number == 0:
        return HeaderValidationResult(is_valid=False, error_message="File is empty.")
    return HeaderValidationResult(is_valid=True, first_header=first_header)


def validate_header_file(path: Path | str) -> HeaderValidationResult:
    path = Path(path)
    if not path.exists():
        return HeaderValidationResult(is_valid=False, error_message="File not found.")
    with path.open("r", encoding="ascii", errors="replace", newline="") as fh:
        return validate_header(fh)
