from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pbcat.framing import RecordLocation


class PbcatError(Exception):
    pass


class SourceError(PbcatError):
    pass


class ShortReadError(SourceError):
    def __init__(self, offset: int, expected: int, actual: int) -> None:
        super().__init__(
            f"short read at offset {offset}: expected {expected} bytes, got {actual}"
        )


class VarintError(PbcatError):
    pass


class TruncatedVarintError(VarintError):
    def __init__(self, position: int) -> None:
        super().__init__(f"varint truncated at position {position}")


class VarintOverflowError(VarintError):
    def __init__(self, position: int) -> None:
        super().__init__(f"varint at position {position} overflows 64 bits")


class DescriptorLoadError(PbcatError):
    pass


class SchemaNotFoundError(PbcatError):
    def __init__(self, identifier: str) -> None:
        super().__init__(f"no message type named '{identifier}' in the schema registry")
        self.identifier = identifier


class NoCandidatesError(PbcatError):
    def __init__(self, root: object | None = None) -> None:
        where = f"under the proto root: '{root}'" if root is not None else "in the schema registry"
        super().__init__(f"no candidate message types found {where}")


class InferenceError(PbcatError):
    pass


class NoMatchingSchemaError(InferenceError):
    def __init__(self, file_name: str) -> None:
        super().__init__(f"no candidate message type can decode the records of '{file_name}'")


class AmbiguousSchemaError(InferenceError):
    def __init__(self, file_name: str, candidates: "Sequence[str]") -> None:
        super().__init__(
            f"message type of '{file_name}' is ambiguous, "
            f"candidates: {', '.join(candidates)} (use --msg to pick one)"
        )
        self.candidates = tuple(candidates)


class StructuralDecodeError(PbcatError):
    def __init__(self, type_name: str, reason: object) -> None:
        super().__init__(f"bytes are not a valid {type_name}: {reason}")


class RecordDecodeError(PbcatError):
    def __init__(self, location: "RecordLocation", type_name: str) -> None:
        super().__init__(
            f"failed to decode record at offset {location.offset} "
            f"(length {location.length}) as {type_name}"
        )
        self.location = location


class FieldNotFoundError(PbcatError):
    def __init__(self, type_name: str, field_name: str) -> None:
        super().__init__(f"{type_name} has no field named '{field_name}'")
        self.field_name = field_name


class InvalidMatchExpressionError(PbcatError):
    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(
            f"invalid match expression '{expression}': {reason}. Format: FieldName='regex'"
        )
