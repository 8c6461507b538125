"""Operator contract tests for the stream layer."""

import logging

import pytest

from tests.utils import record
from walletflow import (
    EmptyStreamError,
    FlattenMode,
    ReplaySubject,
    Stream,
    Subject,
    combine,
    combine_latest,
    concat,
    defer,
    empty,
    merge,
    never,
    of,
    throw,
    timer,
)

pytestmark = [pytest.mark.unit, pytest.mark.stream]


# ============================================================================
# Transform & filter
# ============================================================================


def test_map_emits_transformed_values_in_order():
    """map emits f(v) for every value, preserving count and order."""
    result = record(of(1, 2, 3).map(lambda x: x * 10))

    assert result.values == [10, 20, 30]
    assert result.completed


def test_rshift_is_map():
    """stream >> f is equivalent to stream.map(f)."""
    assert record(of(1, 2) >> str).values == ["1", "2"]


def test_map_error_in_transform_terminates_with_error():
    """An exception raised by the transform arrives as the stream's error."""
    result = record(of(1, 0, 2).map(lambda x: 1 / x))

    assert result.values == [1.0]
    assert isinstance(result.error, ZeroDivisionError)
    assert not result.completed


def test_filter_suppresses_without_error():
    """filter passes values satisfying the predicate and silently drops the rest."""
    result = record(of(1, 2, 3, 4) & (lambda x: x % 2 == 0))

    assert result.values == [2, 4]
    assert result.errors == []


def test_map_to_emits_constant():
    assert record(of("a", "b").map_to(-1)).values == [-1, -1]


def test_tap_runs_side_effect_and_passes_values():
    seen = []
    result = record(of(1, 2).tap(seen.append))

    assert seen == [1, 2]
    assert result.values == [1, 2]


def test_tap_error_in_action_terminates_with_error():
    """An exception raised by the side effect arrives as the stream's error."""
    source = Subject()

    def explode(value):
        if value == 2:
            raise RuntimeError("side effect failed")

    result = record(source.tap(explode))
    source.on_next(1)
    source.on_next(2)
    source.on_next(3)

    assert result.values == [1]
    assert isinstance(result.error, RuntimeError)
    assert not source.has_observers


def test_ignore_elements_keeps_only_completion():
    result = record(of(1, 2).ignore_elements())

    assert result.values == []
    assert result.completed


# ============================================================================
# Stateful operators
# ============================================================================


def test_scan_with_seed_emits_each_accumulation():
    """scan emits the new accumulator after every value."""
    assert record(of(1, 2, 3).scan(lambda acc, x: acc + x, 0)).values == [1, 3, 6]


def test_scan_without_seed_uses_first_value():
    """Without a seed the first value becomes the accumulator and is emitted as-is."""
    assert record(of(5, 1, 1).scan(lambda acc, x: acc - x)).values == [5, 4, 3]


def test_scan_accumulator_is_per_subscription():
    """Two subscriptions to the same scan do not share state."""
    source = Subject()
    totals = source.scan(lambda acc, x: acc + x, 0)
    first = record(totals)
    source.on_next(5)
    second = record(totals)
    source.on_next(1)

    assert first.values == [5, 6]
    assert second.values == [1]


def test_scan_with_update_functions():
    """A stream of update functions folds with (state, fn) -> fn(state)."""
    updates = of(lambda s: s + [1], lambda s: s + [2], lambda _: [])
    result = record(updates.scan(lambda state, update: update(state), []))

    assert result.values == [[1], [1, 2], []]


def test_distinct_until_changed_drops_consecutive_duplicates():
    """Only a value equal to the immediately preceding one is suppressed."""
    result = record(of(1, 1, 2, 2, 1, None, None).distinct_until_changed())

    assert result.values == [1, 2, 1, None]


def test_start_with_emits_before_upstream_has_emitted():
    """Initial values arrive synchronously even from a silent upstream."""
    result = record(never().start_with("a", "b"))

    assert result.values == ["a", "b"]


def test_take_completes_after_count():
    source = Subject()
    result = record(source.take(2))
    for value in (1, 2, 3):
        source.on_next(value)

    assert result.values == [1, 2]
    assert result.completed
    assert not source.has_observers


def test_first_reads_one_value_and_detaches():
    """first() is a one-shot read that does not stay subscribed."""
    source = ReplaySubject(1)
    source.on_next({"unit": "btc"})
    result = record(source.first())

    assert result.values == [{"unit": "btc"}]
    assert result.completed
    assert not source.has_observers


def test_first_on_empty_stream_errors():
    result = record(empty().first())

    assert isinstance(result.error, EmptyStreamError)


# ============================================================================
# Combining operators
# ============================================================================


def test_merge_interleaves_in_arrival_order():
    """Values from merged sources arrive exactly in the order they were pushed."""
    a, b = Subject(), Subject()
    result = record(a | b)
    a.on_next(1)
    b.on_next("x")
    a.on_next(2)

    assert result.values == [1, "x", 2]


def test_merge_completes_only_when_all_sources_complete():
    a, b = Subject(), Subject()
    result = record(merge(a, b))
    a.on_completed()
    assert not result.completed

    b.on_completed()
    assert result.completed


def test_merge_propagates_first_error():
    error = ValueError("boom")
    result = record(merge(never(), throw(error)))

    assert result.error is error


def test_combine_latest_waits_for_every_source():
    """Nothing is emitted until every source has emitted at least once."""
    a, b = Subject(), Subject()
    result = record(combine_latest(a, b, combiner=lambda x, y: x + y))
    a.on_next(1)
    a.on_next(2)
    assert result.values == []

    b.on_next(10)
    assert result.values == [12]


def test_combine_latest_emits_on_every_source_emission():
    """Each emission recomputes synchronously; near-simultaneous updates are not batched."""
    a, b = Subject(), Subject()
    result = record(a + b)
    a.on_next(1)
    b.on_next(2)
    a.on_next(3)
    b.on_next(4)

    assert result.values == [(1, 2), (3, 2), (3, 4)]


def test_product_operator_flattens_chains():
    a, b, c = of(1), of(2), of(3)

    assert record(a + b + c).values == [(1, 2, 3)]


def test_combine_latest_completes_when_a_source_completes_empty():
    result = record(combine_latest(never(), empty()))

    assert result.completed


def test_combine_builds_named_dicts():
    a, b = Subject(), Subject()
    result = record(combine(left=a, right=b))
    a.on_next(1)
    b.on_next(2)

    assert result.values == [{"left": 1, "right": 2}]


def test_with_latest_from_emits_only_on_primary():
    primary, other = Subject(), Subject()
    result = record(primary.with_latest_from(other, combiner=lambda p, o: (p, o)))
    primary.on_next("dropped")
    other.on_next(1)
    other.on_next(2)
    primary.on_next("kept")

    assert result.values == [("kept", 2)]


def test_concat_subscribes_in_sequence():
    second = Subject()
    result = record(concat(of(1, 2), second, of(3)))
    assert result.values == [1, 2]

    second.on_next("live")
    second.on_completed()

    assert result.values == [1, 2, "live", 3]
    assert result.completed


# ============================================================================
# Flattening & errors
# ============================================================================


def test_flat_map_concurrent_keeps_every_inner_stream():
    outer = Subject()
    inners = {"a": Subject(), "b": Subject()}
    result = record(outer.flat_map(lambda key: inners[key]))
    outer.on_next("a")
    outer.on_next("b")
    inners["a"].on_next("a1")
    inners["b"].on_next("b1")

    assert result.values == ["a1", "b1"]


def test_flat_map_switch_cancels_previous_inner():
    """In switch mode the previous inner subscription is cancelled immediately."""
    outer = Subject()
    inners = {"a": Subject(), "b": Subject()}
    result = record(outer.flat_map(lambda key: inners[key], FlattenMode.SWITCH))
    outer.on_next("a")
    outer.on_next("b")
    inners["a"].on_next("stale")
    inners["b"].on_next("fresh")

    assert result.values == ["fresh"]
    assert not inners["a"].has_observers


def test_flat_map_error_policy_converts_failure_to_fallback():
    """A failing inner stream becomes a fallback emission; the outer stream survives."""
    outer = Subject()
    result = record(
        outer.flat_map(
            lambda x: throw(ValueError(x)) if x < 0 else of(x),
            on_error=lambda error: of("fallback"),
        )
    )
    outer.on_next(1)
    outer.on_next(-1)
    outer.on_next(2)

    assert result.values == [1, "fallback", 2]
    assert result.errors == []


def test_flat_map_completes_after_outer_and_inners():
    outer, inner = Subject(), Subject()
    result = record(outer.flat_map(lambda _: inner))
    outer.on_next(None)
    outer.on_completed()
    assert not result.completed

    inner.on_completed()
    assert result.completed


def test_catch_switches_to_fallback():
    result = record(concat(of(1), throw(RuntimeError())).catch(lambda _: of(2)))

    assert result.values == [1, 2]
    assert result.completed


def test_unhandled_error_is_logged_not_raised(caplog):
    """Errors with no handler are logged at ERROR instead of reaching the producer."""
    source = Subject()
    source.subscribe(lambda v: None)

    with caplog.at_level(logging.ERROR, logger="walletflow.stream"):
        source.on_error(RuntimeError("lost connection"))

    assert "lost connection" in caplog.text


# ============================================================================
# Multicasting
# ============================================================================


def test_share_replay_creates_exactly_one_upstream_subscription():
    subscribe_count = 0
    source = Subject()

    def counting():
        nonlocal subscribe_count
        subscribe_count += 1
        return source

    shared = defer(counting).share_replay(1)
    record(shared)
    record(shared)
    record(shared)

    assert subscribe_count == 1


def test_share_replay_replays_last_values_to_late_subscribers():
    source = Subject()
    shared = source.share_replay(2)
    early = record(shared)
    for value in (1, 2, 3):
        source.on_next(value)

    late = record(shared)
    source.on_next(4)

    assert early.values == [1, 2, 3, 4]
    assert late.values == [2, 3, 4]


def test_share_replay_shares_scan_state():
    """Subscribers of a shared fold see one accumulator, not one each."""
    source = Subject()
    shared = source.scan(lambda acc, x: acc + x, 0).share_replay(1)
    first = record(shared)
    source.on_next(5)
    second = record(shared)
    source.on_next(1)

    assert first.values == [5, 6]
    assert second.values == [5, 6]


# ============================================================================
# Subjects & subscriptions
# ============================================================================


def test_disposed_subscription_stops_delivery():
    source = Subject()
    result = record(source.map(lambda x: x))
    source.on_next(1)
    result.dispose()
    source.on_next(2)

    assert result.values == [1]
    assert not source.has_observers


def test_observer_disposed_mid_dispatch_misses_the_value():
    """Disposing another subscription from inside on_next stops delivery at once."""
    source = Subject()
    received = []
    subscriptions = []

    def first(value):
        received.append(("first", value))
        subscriptions[1].dispose()

    subscriptions.append(source.subscribe(first))
    subscriptions.append(source.subscribe(lambda value: received.append(("second", value))))
    source.on_next(1)

    assert received == [("first", 1)]


def test_subject_replays_terminal_event_to_late_subscribers():
    source = Subject()
    source.on_completed()

    assert record(source).completed


def test_timer_emits_once_after_delay(scheduler):
    result = record(timer(1.0, scheduler))
    scheduler.advance_by(0.5)
    assert result.values == []

    scheduler.advance_by(0.5)
    assert result.values == [0]
    assert result.completed


def test_disposing_timer_cancels_it(scheduler):
    result = record(timer(1.0, scheduler))
    result.dispose()
    scheduler.run()

    assert result.values == []


def test_stream_rejects_non_stream_operands():
    with pytest.raises(TypeError):
        of(1) | [1]
    with pytest.raises(TypeError):
        of(1) + 1


def test_streams_are_cold():
    """Each subscription to a cold stream starts its own production."""
    calls = []
    stream = Stream(lambda observer: calls.append(observer))
    record(stream)
    record(stream)

    assert len(calls) == 2
