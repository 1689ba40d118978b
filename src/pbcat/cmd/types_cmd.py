"""Types command for pbcat - list the candidate message types."""

import sys

from rich.console import Console
from rich.markup import escape

from pbcat.cli_params import ProtoRootOption, VerboseOption
from pbcat.exceptions import PbcatError
from pbcat.options import CatOptions
from pbcat.utils import configure_logging, load_registry

console_err = Console(stderr=True)


def types(
    *,
    proto_root: ProtoRootOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List the message types considered during inference, one per line.

    Parameters
    ----------
    proto_root
        Directory with compiled descriptor sets (defaults to $PBCAT_PROTO_ROOT).
    verbose
        Enable debug logging.
    """
    configure_logging(verbose, console_err)

    try:
        registry = load_registry(CatOptions(proto_root=proto_root))
    except (PbcatError, ValueError) as e:
        console_err.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    for name in registry.candidates:
        print(name, file=sys.stdout)  # noqa: T201
