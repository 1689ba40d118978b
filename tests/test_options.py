"""Tests for CatOptions."""

from pathlib import Path

import pytest
from pbcat import CatOptions, InvalidMatchExpressionError, RenderStrategy
from pbcat.options import PROTO_ROOT_ENV


def test_defaults():
    options = CatOptions()

    assert options.match_expr is None
    assert options.max_matches == 0
    assert options.renderer is RenderStrategy.FAST
    assert options.sample_size == 10
    assert options.read_concurrency == 30
    assert options.serialize_concurrency == 16


def test_renderer_from_string():
    assert CatOptions(renderer="exact").renderer is RenderStrategy.EXACT  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_matches": -1},
        {"sample_size": 0},
        {"read_concurrency": 0},
        {"serialize_concurrency": 0},
        {"renderer": "pretty"},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        CatOptions(**kwargs)


def test_match_expr_is_parsed_lazily():
    options = CatOptions(match="broken")

    with pytest.raises(InvalidMatchExpressionError):
        _ = options.match_expr

    expr = CatOptions(match="host=web").match_expr
    assert expr is not None
    assert expr.field == "host"


def test_proto_root_flag_wins(monkeypatch):
    monkeypatch.setenv(PROTO_ROOT_ENV, "/from/env")
    assert CatOptions(proto_root="/from/flag").proto_root_path == Path("/from/flag")


def test_proto_root_from_environment(monkeypatch):
    monkeypatch.setenv(PROTO_ROOT_ENV, "/from/env")
    assert CatOptions().proto_root_path == Path("/from/env")


def test_proto_root_missing(monkeypatch):
    monkeypatch.delenv(PROTO_ROOT_ENV, raising=False)

    with pytest.raises(ValueError, match=PROTO_ROOT_ENV):
        _ = CatOptions().proto_root_path
