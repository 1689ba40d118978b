"""Length-delimited record framing.

A framed log is a sequence of ``[varint length][payload]`` records. The framer
only locates payloads; it has no knowledge of the schema used to write them.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from pbcat.exceptions import TruncatedVarintError, VarintError, VarintOverflowError

if TYPE_CHECKING:
    from pbcat.pipeline import CancellationToken

logger = logging.getLogger(__name__)

MAX_VARINT_LEN = 10  # enough for any 64-bit value

# Header bytes are fetched in windows to avoid one read per record
_WINDOW_SIZE = 64 * 1024


class _PositionedReader(Protocol):
    @property
    def size(self) -> int: ...

    def read_at(self, offset: int, length: int) -> bytes: ...


@dataclass(frozen=True, slots=True)
class RecordLocation:
    """Payload span of one record, excluding its length prefix."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


def decode_varint(data: bytes | memoryview, pos: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint starting at ``pos``.

    Returns:
        Tuple of (value, number of bytes consumed)

    Raises:
        TruncatedVarintError: data ends before the varint does
        VarintOverflowError: the varint does not fit in 64 bits
    """
    result = 0
    shift = 0
    end = min(len(data), pos + MAX_VARINT_LEN)
    for i in range(pos, end):
        byte = data[i]
        # 10th byte may only contribute the top bit
        if shift == 63 and byte > 1:
            raise VarintOverflowError(pos)
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, i - pos + 1
        shift += 7
    raise TruncatedVarintError(pos)


def encode_varint(value: int) -> bytes:
    if value < 0 or value >= 1 << 64:
        raise ValueError(f"varint value out of range: {value}")
    out = bytearray()
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def iter_record_locations(
    source: _PositionedReader,
    max_records: int = 0,
    cancel: "CancellationToken | None" = None,
) -> Iterator[RecordLocation]:
    """Yield the location of every complete record in file order.

    The sequence ends quietly at end of input, at a truncated or malformed
    length prefix, at a record whose payload runs past the end of the source,
    after ``max_records`` records (0 means unbounded) or when ``cancel`` is
    cancelled.
    """
    size = source.size
    position = 0
    emitted = 0
    window = b""
    window_start = 0

    while max_records <= 0 or emitted < max_records:
        if cancel is not None and cancel.cancelled:
            return
        if position >= size:
            return

        window_end = window_start + len(window)
        if window_end - position < MAX_VARINT_LEN and window_end < size:
            window = source.read_at(position, min(_WINDOW_SIZE, size - position))
            window_start = position

        try:
            length, header_size = decode_varint(window, position - window_start)
        except TruncatedVarintError:
            logger.debug(f"Truncated length prefix at offset {position}, stopping")
            return
        except VarintError as e:
            logger.warning(f"Malformed length prefix at offset {position}: {e}")
            return

        payload_offset = position + header_size
        if payload_offset + length > size:
            logger.debug(
                f"Record at offset {position} declares {length} bytes "
                f"but only {size - payload_offset} remain, stopping"
            )
            return

        yield RecordLocation(payload_offset, length)
        emitted += 1
        position = payload_offset + length
