"""CLI parameters shared by the pbcat commands."""

from __future__ import annotations

from typing import Annotated

from cyclopts import Group, Parameter

SCHEMA_GROUP = Group("Schema")
GENERAL_GROUP = Group("General")

ProtoRootOption = Annotated[
    str | None,
    Parameter(
        name=["-p", "--proto-root"],
        group=SCHEMA_GROUP,
    ),
]

MessageTypeOption = Annotated[
    str | None,
    Parameter(
        name=["--msg"],
        group=SCHEMA_GROUP,
    ),
]

SampleSizeOption = Annotated[
    int,
    Parameter(
        name=["--sample-size"],
        group=SCHEMA_GROUP,
    ),
]

VerboseOption = Annotated[
    bool,
    Parameter(
        name=["-v", "--verbose"],
        group=GENERAL_GROUP,
    ),
]
