"""
Decoding of the ASCII-hex detector telemetry stream.

The subpackage turns capture files (or any chunked text/byte stream) into
`SampleRecord` values: `frames` locates the E225-synchronised frames,
`processing` unpacks the 15 samples per frame and `runner` drives whole files
with progress reporting and cancellation.
"""

from .frames import (
    FRAME_HEX_LENGTH,
    MARKER,
    FrameDecoder,
    HeaderValidationResult,
    validate_header,
    validate_header_file,
)
from .processing import CHANNELS, LAYERS, VOLTAGE_FACTOR, SampleRecord, extract_samples
from .runner import DecodeResult, decode_chunks, decode_file, decode_files

__all__ = [
    "FRAME_HEX_LENGTH",
    "MARKER",
    "FrameDecoder",
    "HeaderValidationResult",
    "validate_header",
    "validate_header_file",
    "CHANNELS",
    "LAYERS",
    "VOLTAGE_FACTOR",
    "SampleRecord",
    "extract_samples",
    "DecodeResult",
    "decode_chunks",
    "decode_file",
    "decode_files",
]
