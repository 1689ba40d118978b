"""Infer the writer schema of a framed log by trial decoding a sample.

Protobuf's wire format is mostly self-describing, so an unrelated message
type will often decode a record without error: field numbers collide and
short integers fit several types. A type is only accepted when it accounts
for every byte of every sampled record, i.e. re-encoding the decoded value
with unknown fields discarded gives back exactly as many bytes as were read.
"""

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from pbcat.exceptions import (
    AmbiguousSchemaError,
    NoCandidatesError,
    NoMatchingSchemaError,
    ShortReadError,
    StructuralDecodeError,
)
from pbcat.framing import RecordLocation, iter_record_locations
from pbcat.registry import MessageCodec, ProtobufRegistry
from pbcat.source import RecordSource

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 10


def local_name(identifier: str) -> str:
    """Last dot-separated component of a fully-qualified type name."""
    return identifier.rpartition(".")[2]


def is_structurally_compatible(handle: MessageCodec, data: bytes | memoryview) -> bool:
    try:
        message = handle.decode(data)
    except StructuralDecodeError:
        return False
    return len(handle.encode(message, discard_unknown=True)) == len(data)


def match_message_types(
    source: RecordSource,
    registry: ProtobufRegistry,
    candidates: Sequence[str],
    locations: Iterable[RecordLocation],
) -> list[str]:
    """Return the candidates compatible with every record in ``locations``.

    Candidate order is preserved. Stops reading samples as soon as no
    candidate is left.
    """
    remaining = [(identifier, registry.resolve(identifier)) for identifier in candidates]

    for location in locations:
        data = source.read_at(location.offset, location.length)
        if len(data) != location.length:
            raise ShortReadError(location.offset, location.length, len(data))

        remaining = [
            (identifier, handle)
            for identifier, handle in remaining
            if is_structurally_compatible(handle, data)
        ]
        logger.debug(
            f"Record at offset {location.offset}: {len(remaining)} candidate(s) remaining"
        )
        if not remaining:
            break

    return [identifier for identifier, _ in remaining]


def narrow_by_name(candidates: Iterable[str], file_name: str) -> list[str]:
    """Keep the candidates whose local name appears in the file's base name."""
    base_name = Path(file_name).name.lower()
    return [c for c in candidates if local_name(c).lower() in base_name]


def infer_message_type(
    source: RecordSource,
    registry: ProtobufRegistry,
    candidates: Sequence[str] | None = None,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> str:
    """Pick the single message type that wrote ``source``.

    Raises:
        NoCandidatesError: there is nothing to choose from
        NoMatchingSchemaError: no candidate is compatible with the sample
        AmbiguousSchemaError: several candidates remain after the name tie-break
    """
    if candidates is None:
        candidates = registry.candidates
    if not candidates:
        raise NoCandidatesError

    sample = iter_record_locations(source, max_records=sample_size)
    matched = match_message_types(source, registry, candidates, sample)

    if not matched:
        raise NoMatchingSchemaError(source.name)
    if len(matched) == 1:
        return matched[0]

    logger.info(f"Multiple matches: {', '.join(matched)}")
    logger.info("Attempting to match by name...")
    matches_on_name = narrow_by_name(matched, source.name)
    if len(matches_on_name) == 1:
        return matches_on_name[0]

    raise AmbiguousSchemaError(source.name, matched)
