"""pbcat: print length-delimited protobuf logs without knowing their message type.

This package locates records in a framed binary log, infers which of a set of
candidate protobuf message types wrote them, and decodes, filters and renders
the records as JSON lines with a pool of worker threads.
"""

from pbcat.exceptions import (
    AmbiguousSchemaError,
    DescriptorLoadError,
    FieldNotFoundError,
    InferenceError,
    InvalidMatchExpressionError,
    NoCandidatesError,
    NoMatchingSchemaError,
    PbcatError,
    RecordDecodeError,
    SchemaNotFoundError,
    ShortReadError,
    SourceError,
    StructuralDecodeError,
    TruncatedVarintError,
    VarintError,
    VarintOverflowError,
)
from pbcat.framing import (
    MAX_VARINT_LEN,
    RecordLocation,
    decode_varint,
    encode_varint,
    iter_record_locations,
)
from pbcat.inference import (
    DEFAULT_SAMPLE_SIZE,
    infer_message_type,
    is_structurally_compatible,
    local_name,
    match_message_types,
    narrow_by_name,
)
from pbcat.matching import MatchExpr, MatchFilter
from pbcat.options import CatOptions
from pbcat.pipeline import CancellationToken, CatPipeline
from pbcat.registry import MessageCodec, MessageHandle, ProtobufRegistry, discover_descriptor_sets
from pbcat.render import RenderStrategy, get_renderer, message_to_dict, render_exact, render_fast
from pbcat.source import RecordSource, open_source

__all__ = [
    "DEFAULT_SAMPLE_SIZE",
    "MAX_VARINT_LEN",
    "AmbiguousSchemaError",
    "CancellationToken",
    "CatOptions",
    "CatPipeline",
    "DescriptorLoadError",
    "FieldNotFoundError",
    "InferenceError",
    "InvalidMatchExpressionError",
    "MatchExpr",
    "MatchFilter",
    "MessageCodec",
    "MessageHandle",
    "NoCandidatesError",
    "NoMatchingSchemaError",
    "PbcatError",
    "ProtobufRegistry",
    "RecordDecodeError",
    "RecordLocation",
    "RecordSource",
    "RenderStrategy",
    "SchemaNotFoundError",
    "ShortReadError",
    "SourceError",
    "StructuralDecodeError",
    "TruncatedVarintError",
    "VarintError",
    "VarintOverflowError",
    "decode_varint",
    "discover_descriptor_sets",
    "encode_varint",
    "get_renderer",
    "infer_message_type",
    "is_structurally_compatible",
    "iter_record_locations",
    "local_name",
    "match_message_types",
    "message_to_dict",
    "narrow_by_name",
    "open_source",
    "render_exact",
    "render_fast",
]
