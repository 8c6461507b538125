"""
walletflow Stream - Push-Based Stream Primitives
================================================

This module provides the stream layer every derived value in walletflow is built
from. A Stream is a lazily-subscribed, push-based sequence of values that ends with
at most one terminal event (error or completion).

Core Principles:
1. Cold by default - every subscription starts its own production
2. Synchronous delivery - values are pushed to observers as soon as they arrive
3. No buffering - merged sources interleave strictly in arrival order
4. Explicit sharing - only `share_replay` multicasts a single upstream subscription
5. Non-fatal errors - an unhandled error is logged, never raised into the producer

Operators:
- `map(f)` / `stream >> f` - transform every value
- `filter(p)` / `stream & p` - keep values satisfying a predicate
- `merge(a, b)` / `a | b` - interleave values from several streams
- `combine_latest(a, b)` / `a + b` - recompute from the latest value of every source
- `scan(f, seed)` - running accumulation, one accumulator per subscription
- `flat_map(f, mode)` - flatten inner streams, concurrently or switching to the newest
- `share_replay(n)` - one upstream subscription, last `n` values replayed to late joiners

Example:
    incoming = Subject()
    total = incoming.map(lambda pay: pay.msatoshi).scan(lambda n, x: n + x, 0)
    total.subscribe(print)
    incoming.on_next(payment)
"""

import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


# ============================================================================
# SENTINEL VALUES
# ============================================================================


class _NoSeed:
    """Sentinel for 'no seed given' in scan."""

    def __repr__(self):
        return "NO_SEED"


NO_SEED = _NoSeed()


class _NoValue:
    """Sentinel for 'nothing emitted yet'."""

    def __repr__(self):
        return "NO_VALUE"


NO_VALUE = _NoValue()


# ============================================================================
# EXCEPTIONS
# ============================================================================


class WalletflowError(Exception):
    """Base class for walletflow errors."""

    pass


class EmptyStreamError(WalletflowError):
    """Raised through a stream when first() sees completion before any value."""

    pass


# ============================================================================
# OBSERVER & SUBSCRIPTION
# ============================================================================


class Subscription:
    """
    Handle returned by `Stream.subscribe`.

    Calling it (or `dispose()`) detaches the observer. Disposing twice is a no-op.
    """

    __slots__ = ("_dispose", "_is_disposed")

    def __init__(self, dispose: Optional[Callable[[], None]] = None):
        self._dispose = dispose
        self._is_disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    def dispose(self) -> None:
        if self._is_disposed:
            return
        self._is_disposed = True
        dispose, self._dispose = self._dispose, None
        if dispose is not None:
            dispose()

    def __call__(self) -> None:
        self.dispose()


class Observer:
    """
    Receiver of one subscription's events.

    Guarantees the stream grammar: no value after a terminal event and at most
    one terminal event. On a terminal event the observer detaches from its source.
    """

    __slots__ = ("_on_next", "_on_error", "_on_completed", "_is_stopped", "_subscription")

    def __init__(
        self,
        on_next: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_completed: Optional[Callable[[], None]] = None,
    ):
        self._on_next = on_next
        self._on_error = on_error
        self._on_completed = on_completed
        self._is_stopped = False
        self._subscription: Optional[Subscription] = None

    @property
    def is_stopped(self) -> bool:
        return self._is_stopped

    def on_next(self, value: Any) -> None:
        if self._is_stopped:
            return
        if self._on_next is not None:
            self._on_next(value)

    def on_error(self, error: Exception) -> None:
        if self._is_stopped:
            return
        self._is_stopped = True
        try:
            if self._on_error is not None:
                self._on_error(error)
            else:
                logger.error(f"Unhandled stream error: {error!r}")
        finally:
            self._detach()

    def on_completed(self) -> None:
        if self._is_stopped:
            return
        self._is_stopped = True
        try:
            if self._on_completed is not None:
                self._on_completed()
        finally:
            self._detach()

    def attach(self, subscription: Subscription) -> None:
        """Bind the upstream subscription; dispose it at once if already stopped."""
        self._subscription = subscription
        if self._is_stopped:
            subscription.dispose()

    def _detach(self) -> None:
        if self._subscription is not None:
            self._subscription.dispose()


# ============================================================================
# STREAM
# ============================================================================


class FlattenMode(Enum):
    """How flat_map treats overlapping inner streams."""

    CONCURRENT = "concurrent"
    SWITCH = "switch"


class Stream:
    """
    A push-based, lazily-subscribed sequence of values.

    Wraps a subscribe function `subscribe_fn(observer) -> dispose` that starts
    production for one observer and returns a callable (or None) to stop it.
    """

    __slots__ = ("_subscribe_fn",)

    def __init__(self, subscribe_fn: Callable[[Observer], Optional[Callable[[], None]]]):
        self._subscribe_fn = subscribe_fn

    def subscribe(
        self,
        on_next: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_completed: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        """
        Start receiving values.

        Args:
            on_next: Called with every value
            on_error: Called once with the terminal error (logged when omitted)
            on_completed: Called once on completion

        Returns:
            Subscription that stops delivery when disposed
        """
        observer = Observer(on_next, on_error, on_completed)
        subscription = Subscription(self._subscribe_fn(observer))
        observer.attach(subscription)
        return subscription

    # ========================================================================
    # TRANSFORMING OPERATORS
    # ========================================================================

    def map(self, transform: Callable[[Any], Any]) -> "Stream":
        """Emit transform(v) for every upstream value."""
        source = self

        def subscribe(observer: Observer):
            def on_next(value):
                try:
                    result = transform(value)
                except Exception as error:
                    observer.on_error(error)
                    return
                observer.on_next(result)

            return source.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def __rshift__(self, transform: Callable[[Any], Any]) -> "Stream":
        """Map operator: stream >> f"""
        return self.map(transform)

    def map_to(self, value: Any) -> "Stream":
        """Emit the same constant for every upstream value."""
        return self.map(lambda _: value)

    def filter(self, predicate: Callable[[Any], bool]) -> "Stream":
        """Emit values for which predicate holds, suppress the rest."""
        source = self

        def subscribe(observer: Observer):
            def on_next(value):
                try:
                    keep = predicate(value)
                except Exception as error:
                    observer.on_error(error)
                    return
                if keep:
                    observer.on_next(value)

            return source.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def __and__(self, predicate: Callable[[Any], bool]) -> "Stream":
        """Filter operator: stream & predicate"""
        return self.filter(predicate)

    def tap(self, action: Callable[[Any], None]) -> "Stream":
        """Run a side effect for every value and pass it through unchanged."""
        source = self

        def subscribe(observer: Observer):
            def on_next(value):
                try:
                    action(value)
                except Exception as error:
                    observer.on_error(error)
                    return
                observer.on_next(value)

            return source.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def ignore_elements(self) -> "Stream":
        """Drop every value, keep the terminal event."""
        source = self

        def subscribe(observer: Observer):
            return source.subscribe(None, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    # ========================================================================
    # STATEFUL OPERATORS
    # ========================================================================

    def scan(self, reducer: Callable[[Any, Any], Any], seed: Any = NO_SEED) -> "Stream":
        """
        Running accumulation: acc = reducer(acc, v), emitting every new acc.

        Each subscription owns its own accumulator. Without a seed the first
        upstream value becomes the accumulator and is emitted unchanged.
        """
        source = self

        def subscribe(observer: Observer):
            accumulator = seed
            has_accumulator = seed is not NO_SEED

            def on_next(value):
                nonlocal accumulator, has_accumulator
                if not has_accumulator:
                    accumulator = value
                    has_accumulator = True
                else:
                    try:
                        accumulator = reducer(accumulator, value)
                    except Exception as error:
                        observer.on_error(error)
                        return
                observer.on_next(accumulator)

            return source.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def distinct_until_changed(self) -> "Stream":
        """Suppress a value equal to the immediately preceding emission."""
        source = self

        def subscribe(observer: Observer):
            last = NO_VALUE

            def on_next(value):
                nonlocal last
                if last is not NO_VALUE and value == last:
                    return
                last = value
                observer.on_next(value)

            return source.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def start_with(self, *values: Any) -> "Stream":
        """Emit values synchronously on subscription, before anything upstream."""
        source = self

        def subscribe(observer: Observer):
            for value in values:
                observer.on_next(value)
            if observer.is_stopped:
                return None
            return source.subscribe(observer.on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def take(self, count: int) -> "Stream":
        """Emit the first `count` values, then complete."""
        source = self

        def subscribe(observer: Observer):
            if count <= 0:
                observer.on_completed()
                return None
            remaining = count

            def on_next(value):
                nonlocal remaining
                if remaining <= 0:
                    return
                remaining -= 1
                observer.on_next(value)
                if remaining == 0:
                    observer.on_completed()

            return source.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def first(self) -> "Stream":
        """Emit the first value and complete; error if the source is empty."""
        source = self

        def subscribe(observer: Observer):
            seen = False

            def on_next(value):
                nonlocal seen
                if seen:
                    return
                seen = True
                observer.on_next(value)
                observer.on_completed()

            def on_completed():
                if not seen:
                    observer.on_error(EmptyStreamError("first() on a stream that completed empty"))

            return source.subscribe(on_next, observer.on_error, on_completed)

        return Stream(subscribe)

    # ========================================================================
    # COMBINING OPERATORS
    # ========================================================================

    def merge(self, *others: "Stream") -> "Stream":
        return merge(self, *others)

    def __or__(self, other: "Stream") -> "Stream":
        """Merge operator: a | b"""
        if not isinstance(other, Stream):
            raise TypeError(f"Cannot merge Stream with {type(other)}")
        return merge(self, other)

    def combine_latest(self, *others: "Stream", combiner: Optional[Callable] = None) -> "Stream":
        return combine_latest(self, *others, combiner=combiner)

    def __add__(self, other: "Stream") -> "Stream":
        """
        Product operator: a + b -> latest (a, b) tuples.

        Chains flatten, so a + b + c emits 3-tuples.
        """
        if not isinstance(other, Stream):
            raise TypeError(f"Cannot combine Stream with {type(other)}")
        left = self._sources if isinstance(self, CombinedStream) else (self,)
        right = other._sources if isinstance(other, CombinedStream) else (other,)
        return CombinedStream(left + right)

    def with_latest_from(self, *others: "Stream", combiner: Optional[Callable] = None) -> "Stream":
        """
        Emit on every value of this stream, paired with the latest of the others.

        Values arriving before every other stream has emitted are dropped.
        """
        source = self

        def subscribe(observer: Observer):
            latest = [NO_VALUE] * len(others)
            subscriptions = []

            def make_handler(index):
                def on_next(value):
                    latest[index] = value

                return on_next

            def on_next(value):
                if any(v is NO_VALUE for v in latest):
                    return
                try:
                    result = combiner(value, *latest) if combiner else (value, *latest)
                except Exception as error:
                    observer.on_error(error)
                    return
                observer.on_next(result)

            for i, other in enumerate(others):
                subscriptions.append(other.subscribe(make_handler(i), observer.on_error))
            subscriptions.append(
                source.subscribe(on_next, observer.on_error, observer.on_completed)
            )

            def dispose():
                for subscription in subscriptions:
                    subscription.dispose()

            return dispose

        return Stream(subscribe)

    def concat(self, *others: "Stream") -> "Stream":
        return concat(self, *others)

    # ========================================================================
    # FLATTENING & ERROR OPERATORS
    # ========================================================================

    def flat_map(
        self,
        project: Callable[[Any], "Stream"],
        mode: FlattenMode = FlattenMode.CONCURRENT,
        on_error: Optional[Callable[[Exception], "Stream"]] = None,
    ) -> "Stream":
        """
        Subscribe to project(v) for every upstream value and forward its values.

        Args:
            project: Maps an upstream value to an inner stream
            mode: CONCURRENT keeps every inner stream alive, SWITCH cancels the
                previous inner subscription as soon as a new one starts
            on_error: Maps an inner failure to a fallback stream; without it an
                inner failure terminates the result

        Completes once upstream and every live inner stream have completed.
        """
        source = self

        def subscribe(observer: Observer):
            inner_subscriptions: Dict[int, Optional[Subscription]] = {}
            outer_done = False
            latest_key = 0

            def maybe_complete():
                if outer_done and not inner_subscriptions:
                    observer.on_completed()

            def on_next(value):
                nonlocal latest_key
                try:
                    inner = project(value)
                except Exception as error:
                    observer.on_error(error)
                    return
                if on_error is not None:
                    inner = inner.catch(on_error)

                if mode is FlattenMode.SWITCH:
                    previous = list(inner_subscriptions.values())
                    inner_subscriptions.clear()
                    for subscription in previous:
                        if subscription is not None:
                            subscription.dispose()

                latest_key += 1
                key = latest_key
                inner_subscriptions[key] = None

                def inner_next(inner_value):
                    if mode is FlattenMode.SWITCH and key != latest_key:
                        return
                    observer.on_next(inner_value)

                def inner_completed():
                    inner_subscriptions.pop(key, None)
                    maybe_complete()

                subscription = inner.subscribe(inner_next, observer.on_error, inner_completed)
                if key in inner_subscriptions:
                    inner_subscriptions[key] = subscription

            def on_completed():
                nonlocal outer_done
                outer_done = True
                maybe_complete()

            outer = source.subscribe(on_next, observer.on_error, on_completed)

            def dispose():
                outer.dispose()
                for subscription in list(inner_subscriptions.values()):
                    if subscription is not None:
                        subscription.dispose()
                inner_subscriptions.clear()

            return dispose

        return Stream(subscribe)

    def switch_map(
        self,
        project: Callable[[Any], "Stream"],
        on_error: Optional[Callable[[Exception], "Stream"]] = None,
    ) -> "Stream":
        """flat_map in SWITCH mode."""
        return self.flat_map(project, FlattenMode.SWITCH, on_error)

    def catch(self, handler: Callable[[Exception], "Stream"]) -> "Stream":
        """On error, continue with the stream returned by handler(error)."""
        source = self

        def subscribe(observer: Observer):
            subscriptions: List[Subscription] = []

            def on_error(error):
                try:
                    fallback = handler(error)
                except Exception as handler_error:
                    observer.on_error(handler_error)
                    return
                subscriptions.append(
                    fallback.subscribe(observer.on_next, observer.on_error, observer.on_completed)
                )

            subscriptions.insert(
                0, source.subscribe(observer.on_next, on_error, observer.on_completed)
            )

            def dispose():
                for subscription in subscriptions:
                    subscription.dispose()

            return dispose

        return Stream(subscribe)

    # ========================================================================
    # MULTICASTING
    # ========================================================================

    def share_replay(self, buffer_size: int = 1) -> "Stream":
        """
        Multicast with replay.

        The first subscriber connects the single upstream subscription; every
        subscriber (first or late) receives the last `buffer_size` values and
        then live ones. The connection stays up for the upstream's lifetime.
        """
        source = self
        subject = ReplaySubject(buffer_size)
        connected = False

        def subscribe(observer: Observer):
            nonlocal connected
            subscription = subject.subscribe(
                observer.on_next, observer.on_error, observer.on_completed
            )
            if not connected:
                connected = True
                source.subscribe(subject.on_next, subject.on_error, subject.on_completed)
            return subscription

        return Stream(subscribe)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CombinedStream(Stream):
    """Result of `a + b`: latest-value tuples over a flat list of sources."""

    __slots__ = ("_sources",)

    def __init__(self, sources: tuple):
        self._sources = tuple(sources)
        super().__init__(combine_latest(*self._sources)._subscribe_fn)


# ============================================================================
# SUBJECTS - Hot Sources
# ============================================================================


class Subject(Stream):
    """
    A hot stream that is also its own producer.

    Values pushed with `on_next` reach the observers attached at that moment.
    """

    __slots__ = ("_observers", "_is_stopped", "_error")

    def __init__(self):
        super().__init__(self._subscribe_core)
        self._observers: List[Observer] = []
        self._is_stopped = False
        self._error: Optional[Exception] = None

    def _subscribe_core(self, observer: Observer):
        if self._is_stopped:
            self._replay_terminal(observer)
            return None
        self._observers.append(observer)

        def dispose():
            if observer in self._observers:
                self._observers.remove(observer)

        return dispose

    def _replay_terminal(self, observer: Observer) -> None:
        if self._error is not None:
            observer.on_error(self._error)
        else:
            observer.on_completed()

    @property
    def has_observers(self) -> bool:
        return bool(self._observers)

    def on_next(self, value: Any) -> None:
        if self._is_stopped:
            return
        for observer in list(self._observers):
            # skip observers disposed earlier in this dispatch
            if observer in self._observers:
                observer.on_next(value)

    def on_error(self, error: Exception) -> None:
        if self._is_stopped:
            return
        self._is_stopped = True
        self._error = error
        observers, self._observers = self._observers, []
        for observer in observers:
            observer.on_error(error)

    def on_completed(self) -> None:
        if self._is_stopped:
            return
        self._is_stopped = True
        observers, self._observers = self._observers, []
        for observer in observers:
            observer.on_completed()


class ReplaySubject(Subject):
    """Subject that replays its last `buffer_size` values to new observers."""

    __slots__ = ("_buffer",)

    def __init__(self, buffer_size: Optional[int] = None):
        super().__init__()
        self._buffer: deque = deque(maxlen=buffer_size)

    def _subscribe_core(self, observer: Observer):
        for value in list(self._buffer):
            observer.on_next(value)
        return super()._subscribe_core(observer)

    def on_next(self, value: Any) -> None:
        if self._is_stopped:
            return
        self._buffer.append(value)
        super().on_next(value)


# ============================================================================
# CREATION FUNCTIONS
# ============================================================================


def of(*values: Any) -> Stream:
    """Cold stream emitting the given values, then completing."""
    return from_iterable(values)


def from_iterable(iterable: Iterable[Any]) -> Stream:
    def subscribe(observer: Observer):
        for value in iterable:
            if observer.is_stopped:
                return None
            observer.on_next(value)
        observer.on_completed()
        return None

    return Stream(subscribe)


def empty() -> Stream:
    def subscribe(observer: Observer):
        observer.on_completed()
        return None

    return Stream(subscribe)


def never() -> Stream:
    return Stream(lambda observer: None)


def throw(error: Exception) -> Stream:
    def subscribe(observer: Observer):
        observer.on_error(error)
        return None

    return Stream(subscribe)


def defer(factory: Callable[[], Stream]) -> Stream:
    """Build a fresh stream per subscription."""

    def subscribe(observer: Observer):
        try:
            stream = factory()
        except Exception as error:
            observer.on_error(error)
            return None
        return stream.subscribe(observer.on_next, observer.on_error, observer.on_completed)

    return Stream(subscribe)


def timer(delay: float, scheduler) -> Stream:
    """Emit 0 once `delay` seconds after subscription, then complete."""

    def subscribe(observer: Observer):
        def fire():
            observer.on_next(0)
            observer.on_completed()

        return scheduler.schedule(delay, fire)

    return Stream(subscribe)


# ============================================================================
# COMBINATORS
# ============================================================================


def merge(*streams: Stream) -> Stream:
    """
    Interleave values from every stream in arrival order.

    Completes when all sources complete; the first error terminates.
    """

    def subscribe(observer: Observer):
        remaining = len(streams)
        if remaining == 0:
            observer.on_completed()
            return None
        subscriptions = []

        def on_completed():
            nonlocal remaining
            remaining -= 1
            if remaining == 0:
                observer.on_completed()

        for stream in streams:
            if observer.is_stopped:
                break
            subscriptions.append(stream.subscribe(observer.on_next, observer.on_error, on_completed))

        def dispose():
            for subscription in subscriptions:
                subscription.dispose()

        return dispose

    return Stream(subscribe)


def combine_latest(*streams: Stream, combiner: Optional[Callable] = None) -> Stream:
    """
    Emit combiner(*latest) whenever any source emits, once all have emitted.

    Without a combiner the latest values are emitted as a tuple. Completes when
    every source has completed, or as soon as a source completes without ever
    emitting.
    """

    def subscribe(observer: Observer):
        count = len(streams)
        if count == 0:
            observer.on_completed()
            return None
        latest = [NO_VALUE] * count
        completed = [False] * count
        ready = False
        subscriptions = []

        def make_handlers(index):
            def on_next(value):
                nonlocal ready
                latest[index] = value
                if not ready:
                    ready = all(v is not NO_VALUE for v in latest)
                    if not ready:
                        return
                try:
                    result = combiner(*latest) if combiner else tuple(latest)
                except Exception as error:
                    observer.on_error(error)
                    return
                observer.on_next(result)

            def on_completed():
                completed[index] = True
                if all(completed) or latest[index] is NO_VALUE:
                    observer.on_completed()

            return on_next, on_completed

        for i, stream in enumerate(streams):
            if observer.is_stopped:
                break
            on_next, on_completed = make_handlers(i)
            subscriptions.append(stream.subscribe(on_next, observer.on_error, on_completed))

        def dispose():
            for subscription in subscriptions:
                subscription.dispose()

        return dispose

    return Stream(subscribe)


def combine(**streams: Stream) -> Stream:
    """combine_latest into a dict keyed by the argument names."""
    names = tuple(streams)
    return combine_latest(
        *streams.values(), combiner=lambda *values: dict(zip(names, values))
    )


def concat(*streams: Stream) -> Stream:
    """Subscribe to each stream in turn, starting the next when one completes."""

    def subscribe(observer: Observer):
        index = 0
        current: Optional[Subscription] = None
        running = False
        pending = True
        disposed = False

        def run():
            nonlocal index, current, running, pending
            running = True
            try:
                while pending and not disposed and not observer.is_stopped:
                    pending = False
                    if index >= len(streams):
                        observer.on_completed()
                        return
                    stream = streams[index]
                    index += 1
                    current = stream.subscribe(observer.on_next, observer.on_error, on_completed)
            finally:
                running = False

        def on_completed():
            nonlocal pending
            pending = True
            if not running:
                run()

        run()

        def dispose():
            nonlocal disposed
            disposed = True
            if current is not None:
                current.dispose()

        return dispose

    return Stream(subscribe)


__all__ = [
    # Core types
    "Stream",
    "CombinedStream",
    "Subject",
    "ReplaySubject",
    "Observer",
    "Subscription",
    "FlattenMode",
    # Creation
    "of",
    "from_iterable",
    "empty",
    "never",
    "throw",
    "defer",
    "timer",
    # Combinators
    "merge",
    "combine_latest",
    "combine",
    "concat",
    # Exceptions
    "WalletflowError",
    "EmptyStreamError",
    # Sentinels
    "NO_SEED",
    "NO_VALUE",
]
