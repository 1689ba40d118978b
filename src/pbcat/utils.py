import logging

from rich.console import Console
from rich.logging import RichHandler

from pbcat.exceptions import NoCandidatesError
from pbcat.inference import infer_message_type
from pbcat.options import CatOptions
from pbcat.registry import ProtobufRegistry
from pbcat.source import RecordSource

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Send log records to stderr through rich; a no-op if logging is already set up."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console or Console(stderr=True),
                rich_tracebacks=True,
                show_path=verbose,
            )
        ],
    )


def load_registry(options: CatOptions) -> ProtobufRegistry:
    root = options.proto_root_path
    registry = ProtobufRegistry.from_root(root)
    if not registry.candidates and options.message_type is None:
        raise NoCandidatesError(root)
    logger.debug(f"Loaded {len(registry.candidates)} message types from {root}")
    return registry


def resolve_message_type(
    source: RecordSource, registry: ProtobufRegistry, options: CatOptions
) -> str:
    """Explicit ``--msg`` if given, otherwise infer it from a sample of ``source``."""
    if options.message_type:
        return options.message_type
    msg_type = infer_message_type(source, registry, sample_size=options.sample_size)
    logger.info(f"Inferred type: {msg_type}")
    return msg_type
