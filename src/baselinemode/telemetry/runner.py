from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from ..config import DecoderConfig
from .frames import FrameDecoder, iterate_stream
from .processing import SAMPLES_PER_FRAME, SampleRecord, extract_samples

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass
class DecodeResult:
    records: List[SampleRecord]
    stats: Dict[str, int] = field(default_factory=dict)
    cancelled: bool = False


def decode_chunks(
    chunks: Iterable[str] | Iterable[bytes],
    *,
    total_size: Optional[int] = None,
    progress_every: int = DecoderConfig.progress_every,
    on_progress: Optional[ProgressCallback] = None,
    cancel=None,
) -> DecodeResult:
    """
    Decode a chunked hex stream into sample records.

    *cancel* is any object with ``is_set()`` and is checked between frames;
    records decoded before it fires are kept. Progress is reported every
    *progress_every* frames as consumed/total_size when *total_size* is known.
    """
    decoder = FrameDecoder()
    records: List[SampleRecord] = []
    consumed = 0
    frames = 0
    cancelled = False
    every = max(int(progress_every), 1)

    for chunk in chunks:
        if cancel is not None and cancel.is_set():
            cancelled = True
            break
        consumed += len(chunk)
        for frame in decoder.feed(chunk):
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            records.extend(extract_samples(frame))
            frames += 1
            if on_progress is not None and total_size and frames % every == 0:
                on_progress(min(consumed / total_size, 1.0))
        if cancelled:
            break

    if cancelled:
        logger.info("Decode cancelled after %d frames", frames)
    else:
        decoder.finish()
        if on_progress is not None:
            on_progress(1.0)

    stats = decoder.stats()
    stats["records"] = len(records)
    incomplete = frames * SAMPLES_PER_FRAME - len(records)
    logger.info(
        "Decoded %d records from %d frames (ignored=%d discarded=%d truncated=%d incomplete=%d)",
        len(records),
        stats.get("frames", 0),
        stats.get("ignored_chars", 0),
        stats.get("discarded_chars", 0),
        stats.get("truncated_frames", 0),
        incomplete,
    )
    return DecodeResult(records=records, stats=stats, cancelled=cancelled)


def _iter_files(paths: Sequence[Path], chunk_size: int) -> Iterator[bytes]:
    for path in paths:
        logger.debug("Reading %s", path)
        with path.open("rb") as fh:
            yield from iterate_stream(fh, chunk_size)


def decode_files(
    paths: Sequence[Path | str],
    *,
    config: Optional[DecoderConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel=None,
) -> DecodeResult:
    """
    Decode several capture files as one continuous stream, exactly as if they
    had been concatenated: a frame split across two files is reassembled.
    """
    config = config or DecoderConfig()
    resolved = [Path(path) for path in paths]
    missing = [path for path in resolved if not path.exists()]
    if missing:
        raise FileNotFoundError(missing[0])
    total_size = sum(path.stat().st_size for path in resolved)
    return decode_chunks(
        _iter_files(resolved, config.chunk_size),
        total_size=total_size,
        progress_every=config.progress_every,
        on_progress=on_progress,
        cancel=cancel,
    )


def decode_file(
    path: Path | str,
    *,
    config: Optional[DecoderConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel=None,
) -> DecodeResult:
    return decode_files([path], config=config, on_progress=on_progress, cancel=cancel)
