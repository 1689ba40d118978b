"""Cat command for pbcat - stream framed protobuf records to stdout as JSON lines."""

import os
import sys
from contextlib import closing
from typing import Annotated

from cyclopts import Group, Parameter
from rich.console import Console
from rich.markup import escape

from pbcat.cli_params import (
    MessageTypeOption,
    ProtoRootOption,
    SampleSizeOption,
    VerboseOption,
)
from pbcat.exceptions import PbcatError
from pbcat.inference import DEFAULT_SAMPLE_SIZE
from pbcat.options import CatOptions
from pbcat.pipeline import DEFAULT_READ_CONCURRENCY, DEFAULT_SERIALIZE_CONCURRENCY, CatPipeline
from pbcat.render import RenderStrategy, get_renderer
from pbcat.source import open_source
from pbcat.utils import configure_logging, load_registry, resolve_message_type

console_err = Console(stderr=True)  # Use stderr for errors

# Parameter groups
FILTERING_GROUP = Group("Filtering")
OUTPUT_GROUP = Group("Output")
PERFORMANCE_GROUP = Group("Performance")


def cat(
    file: str = "-",
    *,
    match: Annotated[
        str | None,
        Parameter(
            name=["-M", "--match"],
            group=FILTERING_GROUP,
        ),
    ] = None,
    count: Annotated[
        bool,
        Parameter(
            name=["-c", "--count"],
            group=OUTPUT_GROUP,
        ),
    ] = False,
    max_matches: Annotated[
        int,
        Parameter(
            name=["-m", "--max"],
            group=OUTPUT_GROUP,
        ),
    ] = 0,
    renderer: Annotated[
        RenderStrategy,
        Parameter(
            name=["--renderer"],
            group=OUTPUT_GROUP,
        ),
    ] = RenderStrategy.FAST,
    jsonpb: Annotated[
        bool,
        Parameter(
            name=["--jsonpb"],
            group=OUTPUT_GROUP,
        ),
    ] = False,
    proto_root: ProtoRootOption = None,
    msg: MessageTypeOption = None,
    sample_size: SampleSizeOption = DEFAULT_SAMPLE_SIZE,
    read_workers: Annotated[
        int,
        Parameter(
            name=["--read-workers"],
            group=PERFORMANCE_GROUP,
        ),
    ] = DEFAULT_READ_CONCURRENCY,
    serialize_workers: Annotated[
        int,
        Parameter(
            name=["--serialize-workers"],
            group=PERFORMANCE_GROUP,
        ),
    ] = DEFAULT_SERIALIZE_CONCURRENCY,
    verbose: VerboseOption = False,
) -> None:
    """Print the records of a length-delimited protobuf log as JSON lines.

    The message type is inferred from the first records of the file unless
    --msg is given. Output order is not the file order.

    Examples:
      # Dump every record
      pbcat -p ./protos events.log

      # Records whose 'level' field matches a regex, at most 5
      pbcat -p ./protos events.log --match 'level=^ERR' -m 5

      # Only count matching records
      pbcat -p ./protos events.log --match 'host=web-\\d+' --count

    Parameters
    ----------
    file
        Path to the framed log, or '-' for standard input.
    match
        Match only records whose field matches a regex. Format: FieldName='regex'.
    count
        Print the number of matching records instead of the records.
    max_matches
        Maximum number of records to output (0 for no limit).
    renderer
        JSON renderer: 'fast' (generic) or 'exact' (canonical proto3 JSON, slower).
    jsonpb
        Shorthand for --renderer exact.
    proto_root
        Directory with compiled descriptor sets (defaults to $PBCAT_PROTO_ROOT).
    msg
        Fully qualified name of the message type; skips inference.
    sample_size
        Number of records used to infer the message type.
    read_workers
        Number of parallel decode workers.
    serialize_workers
        Number of parallel JSON serialization workers.
    verbose
        Enable debug logging.
    """
    configure_logging(verbose, console_err)

    try:
        options = CatOptions(
            match=match,
            count=count,
            max_matches=max_matches,
            proto_root=proto_root,
            message_type=msg,
            renderer=RenderStrategy.EXACT if jsonpb else renderer,
            sample_size=sample_size,
            read_concurrency=read_workers,
            serialize_concurrency=serialize_workers,
        )
        match_expr = options.match_expr
        registry = load_registry(options)

        with open_source(file) as source:
            handle = registry.resolve(resolve_message_type(source, registry, options))
            pipeline = CatPipeline(
                source,
                handle,
                match_expr=match_expr,
                max_matches=options.max_matches,
                render=get_renderer(options.renderer),
                read_concurrency=options.read_concurrency,
                serialize_concurrency=options.serialize_concurrency,
            )
            sink = sys.stdout.buffer

            if options.count:
                # Without a predicate there is nothing to decode
                if match_expr is None:
                    total = pipeline.count_records()
                else:
                    total = pipeline.count_matches()
                sink.write(f"{total}\n".encode())
                sink.flush()
                return

            with closing(pipeline.documents()) as documents:
                for document in documents:
                    sink.write(document)
                    sink.write(b"\n")
                    if match_expr is not None:
                        # If we're matching records flush every time
                        sink.flush()
            sink.flush()

    except KeyboardInterrupt:
        # Allow graceful exit with Ctrl+C
        console_err.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(0)

    except BrokenPipeError:
        # Downstream reader went away (e.g. piped into head); keep the exit-time flush quiet
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)

    except (PbcatError, ValueError) as e:
        console_err.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
