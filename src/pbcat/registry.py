"""Protobuf schema registry built from compiled descriptor sets."""

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

from google.protobuf import (  # noqa: F401 - registers well-known types in the default pool
    any_pb2,
    descriptor_pb2,
    descriptor_pool,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    message_factory,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import DecodeError, Message

from pbcat.exceptions import (
    DescriptorLoadError,
    FieldNotFoundError,
    SchemaNotFoundError,
    StructuralDecodeError,
)

logger = logging.getLogger(__name__)

DESCRIPTOR_SET_SUFFIXES = (".desc", ".protoset", ".binpb", ".fds")

_WELL_KNOWN_PACKAGE = "google.protobuf"


class MessageCodec(Protocol):
    """Capability interface shared by every message type the registry hands out."""

    full_name: str

    def decode(self, data: bytes | memoryview) -> Any: ...

    def encode(self, message: Any, *, discard_unknown: bool = False) -> bytes: ...

    def get_field(self, message: Any, name: str) -> Any: ...

    def unknown_field_count(self, message: Any) -> int: ...


class MessageHandle:
    """Decoder/encoder for a single protobuf message type."""

    def __init__(self, descriptor: Descriptor) -> None:
        self.descriptor = descriptor
        self.full_name: str = descriptor.full_name
        self.message_class: type[Message] = message_factory.GetMessageClass(descriptor)

    def __repr__(self) -> str:
        return f"MessageHandle({self.full_name!r})"

    @property
    def local_name(self) -> str:
        return self.descriptor.name

    def decode(self, data: bytes | memoryview) -> Message:
        try:
            return self.message_class.FromString(bytes(data))
        except DecodeError as e:
            raise StructuralDecodeError(self.full_name, e) from e

    def encode(self, message: Message, *, discard_unknown: bool = False) -> bytes:
        if discard_unknown:
            stripped = self.message_class()
            stripped.CopyFrom(message)
            stripped.DiscardUnknownFields()
            message = stripped
        return message.SerializeToString()

    def field(self, name: str) -> FieldDescriptor:
        field = self.descriptor.fields_by_name.get(name)
        if field is None:
            raise FieldNotFoundError(self.full_name, name)
        return field

    def get_field(self, message: Message, name: str) -> Any:
        return getattr(message, self.field(name).name)

    def unknown_field_count(self, message: Message) -> int:
        """Number of unknown bytes anywhere in the message tree."""
        return message.ByteSize() - len(self.encode(message, discard_unknown=True))


def discover_descriptor_sets(root: Path) -> list[Path]:
    """Find compiled descriptor sets below ``root`` (or ``root`` itself)."""
    if root.is_file():
        return [root]
    if not root.is_dir():
        raise DescriptorLoadError(f"proto root does not exist: '{root}'")
    return sorted(
        path
        for path in root.rglob("*")
        if path.suffix in DESCRIPTOR_SET_SUFFIXES and path.is_file()
    )


def _read_descriptor_set(path: Path) -> descriptor_pb2.FileDescriptorSet:
    file_set = descriptor_pb2.FileDescriptorSet()
    try:
        file_set.ParseFromString(path.read_bytes())
    except (OSError, DecodeError) as e:
        raise DescriptorLoadError(f"failed to read descriptor set '{path}': {e}") from e
    return file_set


def _default_pool_file(name: str) -> descriptor_pb2.FileDescriptorProto | None:
    try:
        file_desc = descriptor_pool.Default().FindFileByName(name)
    except KeyError:
        return None
    proto = descriptor_pb2.FileDescriptorProto()
    file_desc.CopyToProto(proto)
    return proto


class ProtobufRegistry:
    """Maps fully-qualified message names to :class:`MessageHandle` objects.

    The candidate list holds the top-level message types of every loaded file
    in load order. Well-known types are resolvable but never candidates.
    """

    def __init__(
        self,
        pool: descriptor_pool.DescriptorPool | None = None,
        candidates: Sequence[str] = (),
    ) -> None:
        self._pool = pool if pool is not None else descriptor_pool.DescriptorPool()
        self._candidates = list(candidates)
        self._handles: dict[str, MessageHandle] = {}

    @classmethod
    def from_files(
        cls, files: Iterable[descriptor_pb2.FileDescriptorProto]
    ) -> "ProtobufRegistry":
        protos = {}
        for proto in files:
            protos.setdefault(proto.name, proto)

        pool = descriptor_pool.DescriptorPool()
        added: set[str] = set()

        def add(name: str, chain: tuple[str, ...]) -> None:
            if name in added:
                return
            if name in chain:
                raise DescriptorLoadError(f"import cycle: {' -> '.join((*chain, name))}")
            proto = protos.get(name)
            if proto is None:
                proto = _default_pool_file(name)
            if proto is None:
                importer = chain[-1] if chain else "<root>"
                raise DescriptorLoadError(f"'{importer}' imports '{name}' which was not found")
            for dependency in proto.dependency:
                add(dependency, (*chain, name))
            try:
                pool.AddSerializedFile(proto.SerializeToString())
            except (TypeError, ValueError) as e:
                raise DescriptorLoadError(f"invalid descriptor for '{name}': {e}") from e
            added.add(name)

        for name in protos:
            add(name, ())

        candidates = [
            f"{proto.package}.{message.name}" if proto.package else message.name
            for proto in protos.values()
            if proto.package != _WELL_KNOWN_PACKAGE
            and not proto.package.startswith(_WELL_KNOWN_PACKAGE + ".")
            for message in proto.message_type
        ]
        return cls(pool, candidates)

    @classmethod
    def from_descriptor_sets(cls, paths: Iterable[Path]) -> "ProtobufRegistry":
        files: list[descriptor_pb2.FileDescriptorProto] = []
        for path in paths:
            logger.debug(f"Loading descriptor set {path}")
            files.extend(_read_descriptor_set(path).file)
        return cls.from_files(files)

    @classmethod
    def from_root(cls, root: Path) -> "ProtobufRegistry":
        return cls.from_descriptor_sets(discover_descriptor_sets(root))

    @property
    def candidates(self) -> list[str]:
        return list(self._candidates)

    def resolve(self, identifier: str) -> MessageHandle:
        handle = self._handles.get(identifier)
        if handle is None:
            try:
                descriptor = self._pool.FindMessageTypeByName(identifier)
            except KeyError:
                raise SchemaNotFoundError(identifier) from None
            handle = self._handles[identifier] = MessageHandle(descriptor)
        return handle

    def decode(self, handle: MessageCodec, data: bytes | memoryview) -> tuple[Any, int]:
        """Decode ``data`` and report how many of its bytes the schema left unmapped."""
        message = handle.decode(data)
        return message, len(data) - len(handle.encode(message, discard_unknown=True))
