"""Concurrent decode → match → serialize pipeline over a framed log.

Stages are threads connected by bounded queues::

    framer ─▶ decoder × W ─▶ matcher ─▶ serializer × P ─▶ consumer

The framer and the matcher are single threads; ordering is only guaranteed
up to the framer. Every blocking put/get polls a :class:`CancellationToken`
so that no worker can stay blocked once the run is over:

- ``abort`` is cancelled when any worker fails or the consumer stops early.
- ``upstream`` (a child of ``abort``) is cancelled by the matcher once the
  output cap is reached; it stops the framer and the decoders while the
  serializers finish the messages already matched.
"""

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from pbcat.exceptions import RecordDecodeError, ShortReadError, StructuralDecodeError
from pbcat.framing import RecordLocation, iter_record_locations
from pbcat.matching import MatchExpr, MatchFilter
from pbcat.registry import MessageCodec
from pbcat.source import RecordSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_READ_CONCURRENCY = 30
DEFAULT_SERIALIZE_CONCURRENCY = 16

_POLL_INTERVAL = 0.05  # seconds between cancellation checks while blocked
_QUEUE_DEPTH_PER_WORKER = 4


class _Done:
    """End-of-stream marker; one is sent per downstream consumer."""

    def __repr__(self) -> str:
        return "<DONE>"


DONE = _Done()


class CancellationToken:
    """Broadcast stop condition checked by every worker.

    A child token reports cancelled when either it or its parent is.
    """

    __slots__ = ("_event", "_parent")

    def __init__(self, parent: "CancellationToken | None" = None) -> None:
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or (self._parent is not None and self._parent.cancelled)


def _put(q: "queue.Queue[Any]", item: Any, token: CancellationToken) -> bool:
    """Blocking put; returns False if the token was cancelled first."""
    while not token.cancelled:
        try:
            q.put(item, timeout=_POLL_INTERVAL)
        except queue.Full:
            continue
        return True
    return False


def _get(q: "queue.Queue[Any]", token: CancellationToken) -> Any:
    """Blocking get; returns DONE if the token was cancelled first."""
    while not token.cancelled:
        try:
            return q.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            continue
    return DONE


def _drain(q: "queue.Queue[T | _Done]", producers: int, token: CancellationToken) -> Iterator[T]:
    """Yield items until every producer has sent DONE or the token is cancelled."""
    remaining = producers
    while remaining > 0:
        item = _get(q, token)
        if item is DONE:
            if token.cancelled:
                return
            remaining -= 1
            continue
        yield item  # type: ignore[misc]


class _WorkerGroup:
    """Threads of one pipeline run; the first failure aborts the whole run."""

    def __init__(self, abort: CancellationToken) -> None:
        self._abort = abort
        self._threads: list[threading.Thread] = []
        self._errors: list[Exception] = []
        self._lock = threading.Lock()

    def spawn(self, name: str, target: Callable[..., None], *args: Any) -> None:
        thread = threading.Thread(target=self._run, args=(target, *args), name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _run(self, target: Callable[..., None], *args: Any) -> None:
        try:
            target(*args)
        except Exception as e:  # noqa: BLE001
            with self._lock:
                self._errors.append(e)
            self._abort.cancel()

    def join(self) -> None:
        for thread in self._threads:
            thread.join()

    def raise_first_error(self) -> None:
        with self._lock:
            if self._errors:
                raise self._errors[0]


class CatPipeline:
    """Decode, filter and render every record of ``source`` as ``handle``.

    Each of :meth:`documents`, :meth:`matches`, :meth:`count_records` and
    :meth:`count_matches` performs an independent full scan.

    ``last_filter`` is the :class:`MatchFilter` of the most recently started
    :meth:`documents` or :meth:`matches` run, holding that run's ``matched``
    and ``skipped`` counts. The next run replaces it, so read it once the run
    has been consumed.
    """

    def __init__(
        self,
        source: RecordSource,
        handle: MessageCodec,
        *,
        match_expr: MatchExpr | None = None,
        max_matches: int = 0,
        render: Callable[[Any], bytes] | None = None,
        read_concurrency: int = DEFAULT_READ_CONCURRENCY,
        serialize_concurrency: int = DEFAULT_SERIALIZE_CONCURRENCY,
    ) -> None:
        if read_concurrency < 1 or serialize_concurrency < 1:
            raise ValueError("worker counts must be at least 1")
        if max_matches < 0:
            raise ValueError("max_matches must not be negative")
        self.source = source
        self.handle = handle
        self.match_expr = match_expr
        self.max_matches = max_matches
        self.render = render
        self.read_concurrency = read_concurrency
        self.serialize_concurrency = serialize_concurrency
        # Match statistics of the most recent run, replaced by each new one
        self.last_filter: MatchFilter | None = None

    @property
    def _scan_limit(self) -> int:
        # Without a predicate every record is a match, so the scan can stop at the cap
        return self.max_matches if self.match_expr is None else 0

    def count_records(self) -> int:
        """Count records without decoding them (only valid without a predicate)."""
        return sum(1 for _ in iter_record_locations(self.source, max_records=self._scan_limit))

    def count_matches(self) -> int:
        return sum(1 for _ in self.matches())

    def matches(self) -> Iterator[Any]:
        """Yield decoded messages that pass the filter, in no particular order."""
        return self._run(serialize=False)

    def documents(self) -> Iterator[bytes]:
        """Yield one rendered document per matching record, in no particular order."""
        if self.render is None:
            raise ValueError("a renderer is required to produce documents")
        return self._run(serialize=True)

    # Stages

    def _frame(self, out_q: "queue.Queue[Any]", token: CancellationToken) -> None:
        for location in iter_record_locations(
            self.source, max_records=self._scan_limit, cancel=token
        ):
            if not _put(out_q, location, token):
                return
        for _ in range(self.read_concurrency):
            _put(out_q, DONE, token)

    def _decode(
        self, in_q: "queue.Queue[Any]", out_q: "queue.Queue[Any]", token: CancellationToken
    ) -> None:
        while (location := _get(in_q, token)) is not DONE:
            message = self._decode_one(location)
            if not _put(out_q, message, token):
                return
        _put(out_q, DONE, token)

    def _decode_one(self, location: RecordLocation) -> Any:
        data = self.source.read_at(location.offset, location.length)
        if len(data) != location.length:
            raise ShortReadError(location.offset, location.length, len(data))
        try:
            return self.handle.decode(data)
        except StructuralDecodeError as e:
            raise RecordDecodeError(location, self.handle.full_name) from e

    def _match(
        self,
        match_filter: MatchFilter,
        in_q: "queue.Queue[Any]",
        out_q: "queue.Queue[Any]",
        consumers: int,
        upstream: CancellationToken,
        abort: CancellationToken,
    ) -> None:
        decoded = _drain(in_q, self.read_concurrency, upstream)
        for message in match_filter.filter(decoded):
            if not _put(out_q, message, abort):
                return
        if match_filter.exhausted:
            logger.debug(f"Reached {match_filter.max_matches} matches, stopping readers")
        upstream.cancel()
        for _ in range(consumers):
            _put(out_q, DONE, abort)

    def _serialize(
        self, in_q: "queue.Queue[Any]", out_q: "queue.Queue[Any]", token: CancellationToken
    ) -> None:
        render = self.render
        assert render is not None
        while (message := _get(in_q, token)) is not DONE:
            if not _put(out_q, render(message), token):
                return
        _put(out_q, DONE, token)

    def _run(self, *, serialize: bool) -> Iterator[Any]:
        abort = CancellationToken()
        upstream = CancellationToken(abort)
        workers = _WorkerGroup(abort)
        match_filter = MatchFilter(self.handle, self.match_expr, self.max_matches)
        self.last_filter = match_filter

        locations: queue.Queue[Any] = queue.Queue(
            self.read_concurrency * _QUEUE_DEPTH_PER_WORKER
        )
        decoded: queue.Queue[Any] = queue.Queue(self.read_concurrency * _QUEUE_DEPTH_PER_WORKER)
        matched: queue.Queue[Any] = queue.Queue(
            self.serialize_concurrency * _QUEUE_DEPTH_PER_WORKER
        )

        workers.spawn("pbcat-framer", self._frame, locations, upstream)
        for i in range(self.read_concurrency):
            workers.spawn(f"pbcat-decoder-{i}", self._decode, locations, decoded, upstream)

        if serialize:
            rendered: queue.Queue[Any] = queue.Queue(
                self.serialize_concurrency * _QUEUE_DEPTH_PER_WORKER
            )
            workers.spawn(
                "pbcat-matcher",
                self._match,
                match_filter,
                decoded,
                matched,
                self.serialize_concurrency,
                upstream,
                abort,
            )
            for i in range(self.serialize_concurrency):
                workers.spawn(f"pbcat-serializer-{i}", self._serialize, matched, rendered, abort)
            output, producers = rendered, self.serialize_concurrency
        else:
            workers.spawn(
                "pbcat-matcher", self._match, match_filter, decoded, matched, 1, upstream, abort
            )
            output, producers = matched, 1

        try:
            yield from _drain(output, producers, abort)
        finally:
            # Also reached when the consumer closes the generator early
            abort.cancel()
            workers.join()
        workers.raise_first_error()
