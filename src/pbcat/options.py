"""Run configuration assembled from CLI arguments."""

import os
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path

from pbcat.inference import DEFAULT_SAMPLE_SIZE
from pbcat.matching import MatchExpr
from pbcat.pipeline import DEFAULT_READ_CONCURRENCY, DEFAULT_SERIALIZE_CONCURRENCY
from pbcat.render import RenderStrategy

PROTO_ROOT_ENV = "PBCAT_PROTO_ROOT"


@dataclass  # No slots=True - needed for @cached_property
class CatOptions:
    """Raw CLI arguments; derived values are computed lazily via cached_property."""

    match: str | None = None
    count: bool = False
    max_matches: int = 0
    proto_root: str | None = None
    message_type: str | None = None
    renderer: RenderStrategy = RenderStrategy.FAST
    sample_size: int = DEFAULT_SAMPLE_SIZE
    read_concurrency: int = DEFAULT_READ_CONCURRENCY
    serialize_concurrency: int = DEFAULT_SERIALIZE_CONCURRENCY

    def __post_init__(self) -> None:
        if self.max_matches < 0:
            raise ValueError("Maximum number of matches cannot be negative")
        if self.sample_size < 1:
            raise ValueError("Sample size must be at least 1")
        if self.read_concurrency < 1 or self.serialize_concurrency < 1:
            raise ValueError("Worker counts must be at least 1")
        self.renderer = RenderStrategy(self.renderer)

    @cached_property
    def match_expr(self) -> MatchExpr | None:
        """Compiled match expression, or None to pass every message."""
        return MatchExpr.parse(self.match) if self.match else None

    @cached_property
    def proto_root_path(self) -> Path:
        """Proto root from the CLI or the environment."""
        root = self.proto_root or os.environ.get(PROTO_ROOT_ENV, "")
        if not root:
            raise ValueError(
                "No root directory set for protos.\n"
                f"Please make sure that the environment variable {PROTO_ROOT_ENV} is set\n"
                "or use --proto-root/-p to pass a root directory."
            )
        return Path(root)
