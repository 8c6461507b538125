"""
walletflow Aggregates - Derived Node State
==========================================

The derived values built from node listings and live events.

| node | inputs | rule |
|---|---|---|
| payments | payments snapshot, outgoing | sync+patch, append completed payment |
| invoices | invoices snapshot, new invoice, incoming | sync+patch, append / merge by label, paid only |
| channel balance | peers snapshot, incoming, outgoing | sync+patch over a number, deduplicated |
| feed | invoices, payments | combine latest, full rebuild, newest first |
| on-chain balance | funds snapshot | sum of outputs |
| loading | request streams | +1 / -1 per foreground request, running sum |
| rpc history | rpc results, clear | newest first, capped, clear empties |
"""

import operator
from typing import Callable, Iterable, Tuple

from .patches import (
    AddReceived,
    AppendInvoice,
    AppendPayment,
    ClearHistory,
    PushHistory,
    SubtractSent,
    UpdatePaidInvoice,
    fold_patches,
    sync_patch,
)
from .records import Channel, FeedEntry, FundsOutput, Invoice, Payment, Peer, RpcRequest
from .stream import Stream, combine_latest, merge, of

# ============================================================================
# REDUCTIONS
# ============================================================================


def sum_channels(channels: Iterable[Channel]) -> int:
    """Our balance across channels in normal operation."""
    return sum(channel.msatoshi_to_us for channel in channels if channel.is_normal)


def sum_peers(peers: Iterable[Peer]) -> int:
    return sum(sum_channels(peer.channels) for peer in peers if peer.channels)


def sum_outputs(outputs: Iterable[FundsOutput]) -> int:
    return sum(output.value for output in outputs)


def paid_only(invoices: Tuple[Invoice, ...]) -> Tuple[Invoice, ...]:
    return tuple(invoice for invoice in invoices if invoice.is_paid)


def build_feed(invoices: Iterable[Invoice], payments: Iterable[Payment]) -> Tuple[FeedEntry, ...]:
    """All payments in and out, newest first. Ties keep invoices before payments."""
    entries = [
        FeedEntry("in", invoice.paid_at, invoice.msatoshi_received, invoice) for invoice in invoices
    ] + [FeedEntry("out", payment.created_at, payment.msatoshi, payment) for payment in payments]
    entries.sort(key=lambda entry: entry.timestamp or 0, reverse=True)
    return tuple(entries)


# ============================================================================
# SYNC+PATCH NODES
# ============================================================================


def payments_node(payments: Stream, outgoing: Stream, clock: Callable[[], int]) -> Stream:
    """
    Payment list, resynced from listings and patched with completed outgoing payments.

    The completion time is the wall clock when the outgoing event arrives.
    """
    return sync_patch(
        payments.map(tuple),
        outgoing.map(lambda payment: AppendPayment(payment, clock())),
        initial=(),
    )


def invoices_node(invoices: Stream, invoice: Stream, incoming: Stream) -> Stream:
    """Paid invoices, resynced from listings and patched with new and paid invoices."""
    return sync_patch(
        invoices.map(tuple),
        invoice.map(AppendInvoice),
        incoming.map(UpdatePaidInvoice),
        initial=(),
        post_filter=paid_only,
    )


def channel_balance_node(peers: Stream, incoming: Stream, outgoing: Stream) -> Stream:
    """
    Total channel balance: the latest peer listing plus received minus sent since.

    Starts as None (unknown); emits only when the total actually changes.
    """
    return sync_patch(
        peers.map(sum_peers),
        incoming.map(lambda invoice: AddReceived(invoice.msatoshi_received)),
        outgoing.map(lambda payment: SubtractSent(payment.msatoshi_sent)),
        initial=None,
    ).distinct_until_changed()


# ============================================================================
# OTHER AGGREGATES
# ============================================================================


def feed_node(invoices: Stream, payments: Stream) -> Stream:
    return combine_latest(invoices, payments, combiner=build_feed)


def onchain_balance_node(funds: Stream) -> Stream:
    return funds.map(lambda snapshot: sum_outputs(snapshot.outputs or ()))


class RequestStream(Stream):
    """A single RPC call's result stream, tagged with the request it answers."""

    __slots__ = ("request",)

    def __init__(self, request: RpcRequest, response: Stream):
        super().__init__(response._subscribe_fn)
        self.request = request

    @property
    def is_background(self) -> bool:
        return self.request.background


def _track_request(response: Stream) -> Stream:
    return response.ignore_elements().concat(of(-1)).start_with(+1)


def loading_node(requests: Stream) -> Stream:
    """
    Number of foreground requests in flight.

    Each request counts +1 when it starts and -1 when it completes or fails;
    a failure never reaches the counter as an error.
    """
    return (
        requests.filter(lambda request: not request.is_background)
        .flat_map(_track_request, on_error=lambda _: of(-1))
        .start_with(0)
        .scan(operator.add)
    )


def rpc_history_node(results: Stream, clear: Stream, limit: int) -> Stream:
    """Console results, newest first and at most `limit` long; cleared on demand."""
    patches = merge(
        results.map(lambda result: PushHistory(result, limit)),
        clear.map_to(ClearHistory()),
    )
    return fold_patches(patches, ())


__all__ = [
    "sum_channels",
    "sum_peers",
    "sum_outputs",
    "paid_only",
    "build_feed",
    "payments_node",
    "invoices_node",
    "channel_balance_node",
    "feed_node",
    "onchain_balance_node",
    "RequestStream",
    "loading_node",
    "rpc_history_node",
]
