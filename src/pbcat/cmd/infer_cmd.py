"""Infer command for pbcat - report the message type of a framed log."""

import sys

from rich.console import Console
from rich.markup import escape

from pbcat.cli_params import (
    ProtoRootOption,
    SampleSizeOption,
    VerboseOption,
)
from pbcat.exceptions import AmbiguousSchemaError, PbcatError
from pbcat.inference import DEFAULT_SAMPLE_SIZE, infer_message_type
from pbcat.options import CatOptions
from pbcat.source import open_source
from pbcat.utils import configure_logging, load_registry

console_err = Console(stderr=True)


def infer(
    file: str = "-",
    *,
    proto_root: ProtoRootOption = None,
    sample_size: SampleSizeOption = DEFAULT_SAMPLE_SIZE,
    verbose: VerboseOption = False,
) -> None:
    """Print the fully qualified name of the message type that wrote FILE.

    Parameters
    ----------
    file
        Path to the framed log, or '-' for standard input.
    proto_root
        Directory with compiled descriptor sets (defaults to $PBCAT_PROTO_ROOT).
    sample_size
        Number of records used to infer the message type.
    verbose
        Enable debug logging.
    """
    configure_logging(verbose, console_err)

    try:
        options = CatOptions(proto_root=proto_root, sample_size=sample_size)
        registry = load_registry(options)
        with open_source(file) as source:
            msg_type = infer_message_type(source, registry, sample_size=options.sample_size)
    except AmbiguousSchemaError as e:
        console_err.print(f"[red]Error:[/red] {escape(str(e))}")
        for candidate in e.candidates:
            console_err.print(f"  [yellow]{escape(candidate)}[/yellow]")
        sys.exit(1)
    except (PbcatError, ValueError) as e:
        console_err.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    print(msg_type, file=sys.stdout)  # noqa: T201
