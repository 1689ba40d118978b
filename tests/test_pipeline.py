"""Tests for the concurrent cat pipeline."""

import json
import logging
import threading
from collections import Counter

import pytest
from pbcat import (
    CancellationToken,
    CatPipeline,
    MatchExpr,
    RecordDecodeError,
    open_source,
    render_fast,
)

from tests.fixtures.record_generator import make_log_lines, make_readings, write_framed

pytestmark = pytest.mark.usefixtures("no_leaked_workers")

WORKER_COUNTS = [1, 4, 30]


def _pipeline_threads() -> list[str]:
    return [t.name for t in threading.enumerate() if t.name.startswith("pbcat-")]


class TestCancellationToken:
    def test_cancel(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled

    def test_child_follows_parent(self):
        parent = CancellationToken()
        child = CancellationToken(parent)

        parent.cancel()

        assert child.cancelled

    def test_parent_ignores_child(self):
        parent = CancellationToken()
        child = CancellationToken(parent)

        child.cancel()

        assert child.cancelled
        assert not parent.cancelled


class TestDocuments:
    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_output_is_a_permutation_of_the_input(
        self, registry, log_line_handle, tmp_path, workers
    ):
        messages = make_log_lines(registry, 500)
        path = write_framed(tmp_path / "lines.bin", messages)

        with open_source(path) as source:
            pipeline = CatPipeline(
                source,
                log_line_handle,
                render=render_fast,
                read_concurrency=workers,
                serialize_concurrency=workers,
            )
            documents = list(pipeline.documents())

        assert Counter(documents) == Counter(render_fast(m) for m in messages)

    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_match_selects_exactly_the_matching_records(
        self, registry, log_line_handle, log_lines_log, workers
    ):
        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(
                source,
                log_line_handle,
                match_expr=MatchExpr.parse("host=^web-2$"),
                render=render_fast,
                read_concurrency=workers,
            )
            documents = [json.loads(d) for d in pipeline.documents()]

        assert len(documents) == 100
        assert {d["host"] for d in documents} == {"web-2"}
        assert sorted(d["attrs"]["index"] for d in documents) == list(range(2, 400, 4))

    @pytest.mark.parametrize("cap", [1, 7, 200, 1000])
    def test_cap_without_predicate(self, reading_handle, readings_log, cap):
        with open_source(readings_log) as source:
            pipeline = CatPipeline(source, reading_handle, max_matches=cap, render=render_fast)
            documents = list(pipeline.documents())

        assert len(documents) == min(cap, 200)
        assert all(json.loads(d)["sensor"].startswith("sensor-") for d in documents)

    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_cap_with_predicate(self, log_line_handle, log_lines_log, workers):
        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(
                source,
                log_line_handle,
                match_expr=MatchExpr.parse("host=web-1"),
                max_matches=5,
                render=render_fast,
                read_concurrency=workers,
                serialize_concurrency=workers,
            )
            documents = [json.loads(d) for d in pipeline.documents()]

        assert len(documents) == 5
        assert {d["host"] for d in documents} == {"web-1"}
        assert pipeline.last_filter is not None
        assert pipeline.last_filter.exhausted

    def test_cap_stops_workers(self, log_line_handle, log_lines_log):
        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(source, log_line_handle, max_matches=1, render=render_fast)
            assert len(list(pipeline.documents())) == 1

        assert _pipeline_threads() == []

    def test_early_close_stops_workers(self, reading_handle, readings_log):
        with open_source(readings_log) as source:
            pipeline = CatPipeline(
                source, reading_handle, render=render_fast, read_concurrency=4
            )
            documents = pipeline.documents()
            taken = [next(documents) for _ in range(3)]
            documents.close()

        assert len(taken) == 3
        assert _pipeline_threads() == []

    def test_empty_file(self, reading_handle, tmp_path):
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")

        with open_source(path) as source:
            pipeline = CatPipeline(source, reading_handle, render=render_fast)
            assert list(pipeline.documents()) == []

    def test_truncated_tail_is_ignored(self, registry, reading_handle, tmp_path):
        path = write_framed(tmp_path / "cut.bin", make_readings(registry, 10))
        with path.open("ab") as f:
            f.write(b"\x20partial")

        with open_source(path) as source:
            pipeline = CatPipeline(source, reading_handle, render=render_fast)
            assert len(list(pipeline.documents())) == 10

    def test_requires_renderer(self, reading_handle, readings_log):
        with open_source(readings_log) as source:
            pipeline = CatPipeline(source, reading_handle)
            with pytest.raises(ValueError, match="renderer"):
                pipeline.documents()

    @pytest.mark.parametrize(
        "kwargs",
        [{"read_concurrency": 0}, {"serialize_concurrency": 0}, {"max_matches": -1}],
    )
    def test_invalid_settings(self, reading_handle, readings_log, kwargs):
        with open_source(readings_log) as source, pytest.raises(ValueError):
            CatPipeline(source, reading_handle, **kwargs)


class TestFailures:
    @pytest.mark.parametrize("workers", WORKER_COUNTS)
    def test_corrupt_record_is_fatal(self, registry, reading_handle, tmp_path, workers):
        readings = make_readings(registry, 50)
        path = write_framed(
            tmp_path / "corrupt.bin", [*readings[:25], b"\x0a\x05ab", *readings[25:]]
        )

        with open_source(path) as source:
            pipeline = CatPipeline(
                source, reading_handle, render=render_fast, read_concurrency=workers
            )
            with pytest.raises(RecordDecodeError) as exc_info:
                list(pipeline.documents())

        assert exc_info.value.location.length == 4
        assert _pipeline_threads() == []

    def test_render_failure_is_fatal(self, reading_handle, readings_log):
        def broken_render(message):
            raise RuntimeError("render exploded")

        with open_source(readings_log) as source:
            pipeline = CatPipeline(source, reading_handle, render=broken_render)
            with pytest.raises(RuntimeError, match="render exploded"):
                list(pipeline.documents())

    def test_missing_field_warns_once(self, log_line_handle, log_lines_log, caplog):
        caplog.set_level(logging.WARNING)

        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(
                source, log_line_handle, match_expr=MatchExpr.parse("nope=.*"), render=render_fast
            )
            assert list(pipeline.documents()) == []

        warnings = [r for r in caplog.records if "Can't find field" in r.getMessage()]
        assert len(warnings) == 1
        assert pipeline.last_filter is not None
        assert pipeline.last_filter.skipped == 400


class TestCounting:
    def test_count_records(self, reading_handle, readings_log):
        with open_source(readings_log) as source:
            assert CatPipeline(source, reading_handle).count_records() == 200
            assert CatPipeline(source, reading_handle, max_matches=12).count_records() == 12

    def test_count_matches(self, log_line_handle, log_lines_log):
        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(
                source, log_line_handle, match_expr=MatchExpr.parse("host=web-0|web-3")
            )
            assert pipeline.count_matches() == 200

    def test_count_matches_with_cap(self, log_line_handle, log_lines_log):
        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(
                source,
                log_line_handle,
                match_expr=MatchExpr.parse("severity=^2$"),
                max_matches=10,
            )
            assert pipeline.count_matches() == 10

    def test_matches_are_decoded_messages(self, log_line_handle, log_lines_log):
        with open_source(log_lines_log) as source:
            pipeline = CatPipeline(
                source, log_line_handle, match_expr=MatchExpr.parse("severity=^2$")
            )
            matches = list(pipeline.matches())

        # index % 3 == 0 for i in range(400)
        assert len(matches) == 134
        assert all(m.severity == 2 for m in matches)

    def test_each_run_is_independent(self, reading_handle, readings_log):
        with open_source(readings_log) as source:
            pipeline = CatPipeline(source, reading_handle, render=render_fast)
            assert len(list(pipeline.documents())) == 200
            assert len(list(pipeline.documents())) == 200
            assert pipeline.count_matches() == 200

    def test_last_filter_belongs_to_latest_run(self, log_line_handle, log_lines_log):
        with open_source(log_lines_log) as source:
            match_expr = MatchExpr.parse("host=web-1")
            pipeline = CatPipeline(source, log_line_handle, match_expr=match_expr)
            assert len(list(pipeline.matches())) == 100
            first = pipeline.last_filter
            assert len(list(pipeline.matches())) == 100
            second = pipeline.last_filter

        assert first is not None
        assert second is not None
        assert second is not first
        assert first.matched == 100
        assert second.matched == 100
        assert second.skipped == 0
