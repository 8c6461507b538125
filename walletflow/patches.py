"""
walletflow Patches - Sync+Patch Merge
=====================================

Reconciles a stream of full authoritative snapshots with streams of incremental
patches into one running value.

Every update is a tagged variant (a `Patch` subclass). Folding is a pure step,
`apply(state, patch) -> state`, so a derived value is always "the latest snapshot
plus every patch that arrived after it":

    snapshots ──► Snapshot ─┐
    patch src ──► Patch   ──┼─► merge ─► start_with(initial) ─► scan(apply) ─► post_filter
    patch src ──► Patch   ──┘

Policy:
- A Snapshot replaces the whole state. Patches applied before it are gone once
  it lands, even if the resync has not caught up with the node yet.
- Patches arriving before the first Snapshot apply against `initial`.
- Patches arriving after a Snapshot persist until the next one.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Tuple

from .records import Invoice, Payment
from .stream import Stream, merge


# ============================================================================
# PATCH VARIANTS
# ============================================================================


class Patch(ABC):
    """An update to a derived value: state -> state."""

    @abstractmethod
    def apply_to(self, state: Any) -> Any:
        pass


@dataclass(frozen=True)
class Snapshot(Patch):
    """Full authoritative replacement."""

    value: Any

    def apply_to(self, state: Any) -> Any:
        return self.value


@dataclass(frozen=True)
class AppendPayment(Patch):
    """A completed outgoing payment, stamped with the time it was observed."""

    payment: Payment
    completed_at: int

    def apply_to(self, state: Tuple[Payment, ...]) -> Tuple[Payment, ...]:
        completed = replace(self.payment, status="complete", created_at=self.completed_at)
        return (*state, completed)


@dataclass(frozen=True)
class AppendInvoice(Patch):
    invoice: Invoice

    def apply_to(self, state: Tuple[Invoice, ...]) -> Tuple[Invoice, ...]:
        return (*state, self.invoice)


@dataclass(frozen=True)
class UpdatePaidInvoice(Patch):
    """
    Merge an incoming-payment event into the invoice with the same label.

    Events whose label matches nothing change nothing.
    """

    invoice: Invoice

    def apply_to(self, state: Tuple[Invoice, ...]) -> Tuple[Invoice, ...]:
        return tuple(
            inv.merged(self.invoice) if inv.label == self.invoice.label else inv
            for inv in state
        )


@dataclass(frozen=True)
class AddReceived(Patch):
    """Add to a running total; an unknown (None) total counts as zero."""

    amount: Optional[int]

    def apply_to(self, state: Optional[int]) -> int:
        return (state or 0) + (self.amount or 0)


@dataclass(frozen=True)
class SubtractSent(Patch):
    amount: Optional[int]

    def apply_to(self, state: Optional[int]) -> int:
        return (state or 0) - (self.amount or 0)


@dataclass(frozen=True)
class PushHistory(Patch):
    """Prepend an entry, keeping only the `limit` most recent."""

    entry: Any
    limit: int

    def apply_to(self, state: Tuple[Any, ...]) -> Tuple[Any, ...]:
        return (self.entry, *state)[: self.limit]


@dataclass(frozen=True)
class ClearHistory(Patch):
    def apply_to(self, state: Tuple[Any, ...]) -> Tuple[Any, ...]:
        return ()


# ============================================================================
# FOLD
# ============================================================================


def apply(state: Any, patch: Patch) -> Any:
    """Fold step: the state after `patch`."""
    if not isinstance(patch, Patch):
        raise TypeError(f"Cannot apply {type(patch).__name__} as a patch")
    return patch.apply_to(state)


def fold_patches(patches: Stream, initial: Any) -> Stream:
    """Emit `initial`, then the state after each patch in arrival order."""
    return patches.start_with(initial).scan(apply)


def sync_patch(
    snapshots: Stream,
    *patches: Stream,
    initial: Any,
    post_filter: Optional[Callable[[Any], Any]] = None,
) -> Stream:
    """
    Derived value from a snapshot source and any number of patch sources.

    Args:
        snapshots: Stream of full replacement values
        *patches: Streams of `Patch` variants
        initial: Value before any snapshot (empty collection, zero, None)
        post_filter: Applied to every emitted state, e.g. keeping paid invoices

    Returns:
        Stream of the running derived value, starting with `initial`
    """
    state = fold_patches(merge(snapshots.map(Snapshot), *patches), initial)
    return state.map(post_filter) if post_filter is not None else state


__all__ = [
    "Patch",
    "Snapshot",
    "AppendPayment",
    "AppendInvoice",
    "UpdatePaidInvoice",
    "AddReceived",
    "SubtractSent",
    "PushHistory",
    "ClearHistory",
    "apply",
    "fold_patches",
    "sync_patch",
]
