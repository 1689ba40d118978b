"""Main CLI entry point for pbcat using Cyclopts."""

from cyclopts import App

from pbcat.cmd import cat_cmd, infer_cmd, types_cmd

app = App(
    name="pbcat",
    help="Print length-delimited protobuf logs as JSON lines, inferring the message type.",
    help_format="rich",
)

# Register all commands
app.default(cat_cmd.cat)
app.command(name="infer")(infer_cmd.infer)
app.command(name="types")(types_cmd.types)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
