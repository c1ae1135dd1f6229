"""
Sentinel, parity and LRC validated character extraction.

A track is a sequence of fixed-width frames. Each frame holds
``char_length - 1`` data bits (least significant first) followed by one
parity bit. The data sits between a start and an end sentinel and is
followed by a longitudinal redundancy check (LRC) frame whose data bits are
the XOR of every preceding frame's data bits.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Tuple

from shared.errors import ParseError
from shared.models import DEFAULT_ENCODINGS, DecodedTrack, EncodingDescriptor, Orientation, Parity

logger = logging.getLogger(__name__)


def check_parity(frame: str, parity: Parity = Parity.EVEN) -> bool:
    """
    Validate the trailing parity bit of `frame`.

    With EVEN parity the frame is valid iff the parity bit equals the number
    of 1s among the data bits mod 2 (the whole frame holds an even number of
    1s). With ODD parity the whole frame must hold an odd number of 1s.
    """
    ones = frame.count("1")
    if Parity(parity) is Parity.ODD:
        return ones % 2 == 1
    return ones % 2 == 0


def decode_char(frame: str) -> str:
    """Map the data bits of `frame` (little-endian) onto ``'0' + value``."""
    value = sum(1 << i for i, bit in enumerate(frame[:-1]) if bit == "1")
    return chr(ord("0") + value)


def find_end_sentinel(bits: str, start: int, encoding: EncodingDescriptor) -> int:
    """
    Return the index of the first end sentinel frame-aligned with `start`,
    or -1 when there is none.
    """
    width = encoding.char_length
    pos = start + width
    while pos + width <= len(bits):
        if bits[pos:pos + width] == encoding.end_sentinel:
            return pos
        pos += width
    return -1


def _xor_data(lrc: List[int], frame: str) -> None:
    for i, bit in enumerate(frame[:-1]):
        lrc[i] ^= bit == "1"


def parse_track(
    bits: str,
    encoding: EncodingDescriptor,
    orientation: Orientation = Orientation.CAPTURED,
) -> DecodedTrack:
    """Decode one bit string against one encoding. Never raises ParseError."""
    width = encoding.char_length

    start = bits.find(encoding.start_sentinel)
    if start < 0:
        return DecodedTrack(encoding.name, orientation, no_data=True)
    end = find_end_sentinel(bits, start, encoding)
    if end < 0:
        return DecodedTrack(encoding.name, orientation, no_data=True)

    lrc = [0] * encoding.data_bits
    _xor_data(lrc, encoding.start_sentinel)
    chars = [decode_char(encoding.start_sentinel)]

    for pos in range(start + width, end + width, width):
        frame = bits[pos:pos + width]
        if not check_parity(frame, encoding.parity):
            return DecodedTrack(
                encoding.name,
                orientation,
                characters="".join(chars),
                error=ParseError("character parity mismatch"),
            )
        chars.append(decode_char(frame))
        _xor_data(lrc, frame)

    characters = "".join(chars)
    lrc_frame = bits[end + width:end + 2 * width]
    if len(lrc_frame) < width:
        return DecodedTrack(encoding.name, orientation, characters, error=ParseError("LRC character missing"))

    expected = "".join("1" if bit else "0" for bit in lrc)
    if lrc_frame[:-1] != expected or not check_parity(lrc_frame, encoding.parity):
        return DecodedTrack(encoding.name, orientation, characters, error=ParseError("information parity mismatch"))

    return DecodedTrack(encoding.name, orientation, characters)


def decode_all(
    bits: str,
    encodings: Iterable[EncodingDescriptor] = DEFAULT_ENCODINGS,
) -> Tuple[DecodedTrack, ...]:
    """
    Try every (orientation, encoding) combination independently.

    Results are ordered captured-first, then by encoding.
    """
    encodings: Sequence[EncodingDescriptor] = tuple(encodings)
    results: List[DecodedTrack] = []
    for orientation, oriented in ((Orientation.CAPTURED, bits), (Orientation.REVERSED, bits[::-1])):
        for encoding in encodings:
            track = parse_track(oriented, encoding, orientation)
            if track.ok:
                logger.info("%s (%s): %s", encoding.name, orientation.value, track.characters)
            else:
                logger.debug("%s (%s): %s", encoding.name, orientation.value, track.describe())
            results.append(track)
    return tuple(results)


__all__ = ["check_parity", "decode_all", "decode_char", "find_end_sentinel", "parse_track"]
