"""
walletflow Model - The Application-State Graph
==============================================

Wires every input source through the derived nodes and exposes one multicast
application-state stream.

Node graph (inputs -> node):

    persisted_config, save_config, toggle_* ─► config (server, expert, theme, unit)
    unit, btc_usd ─────────────────────────► unit_formatter
    payments, outgoing ────────────────────► payments ─┐
    invoices, invoice, incoming ───────────► invoices ─┴► feed
    peers, incoming, outgoing ─────────────► channel_balance
    funds ─────────────────────────────────► onchain_balance
    amount_input, unit_formatter, page, go_receive ─► amount_form
    requests ──────────────────────────────► loading
    error, incoming, outgoing, save_config, dismiss, unit_formatter ─► alert
    rpc_result, clear_history ─────────────► rpc_history

Example:
    sources = Sources(payments=payments_subject, peers=peers_subject, ...)
    state = build_model(sources, ModelSettings.from_env())
    state.subscribe(render)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .aggregates import (
    channel_balance_node,
    feed_node,
    invoices_node,
    loading_node,
    onchain_balance_node,
    payments_node,
    rpc_history_node,
)
from .alerts import alert_node
from .config import config_nodes
from .debug import trace
from .scheduler import AsyncIOScheduler, Scheduler
from .settings import DEFAULT_SETTINGS, ModelSettings
from .stream import Stream, merge, never, of
from .units import amount_form, msat_usd_rate, unit_formatter

AppState = Dict[str, Any]


def _source():
    return field(default_factory=never)


@dataclass
class Sources:
    """
    Every input stream the model consumes. Unset sources never emit.

    `persisted_config` is read once (its first value); it defaults to an empty
    configuration. `requests` carries `RequestStream`s.
    """

    # user events
    dismiss: Stream = _source()
    save_config: Stream = _source()
    toggle_expert: Stream = _source()
    toggle_theme: Stream = _source()
    toggle_unit: Stream = _source()
    page: Stream = _source()
    go_receive: Stream = _source()
    amount_input: Stream = _source()
    rpc_request: Stream = _source()
    rpc_result: Stream = _source()
    clear_history: Stream = _source()
    feed_start: Stream = _source()
    persisted_config: Stream = field(default_factory=lambda: of({}))
    # transport
    requests: Stream = _source()
    error: Stream = _source()
    # node events and listings
    invoice: Stream = _source()
    incoming: Stream = _source()
    outgoing: Stream = _source()
    funds: Stream = _source()
    payments: Stream = _source()
    invoices: Stream = _source()
    btc_usd: Stream = _source()
    info: Stream = _source()
    peers: Stream = _source()


def combine_available(**streams: Stream) -> Stream:
    """
    Combine named streams into dicts holding only the names seen so far.

    Emits a fresh dict on every value of any stream; a name is absent until its
    stream has emitted once.
    """
    updates = merge(
        *(stream.map(lambda value, name=name: (name, value)) for name, stream in streams.items())
    )
    return updates.scan(lambda state, update: {**state, update[0]: update[1]}, {})


def build_model(
    sources: Sources,
    settings: ModelSettings = DEFAULT_SETTINGS,
    scheduler: Optional[Scheduler] = None,
) -> Stream:
    """
    Build the application-state stream.

    Args:
        sources: Input streams
        settings: Static tables and limits
        scheduler: Time source for delayed alerts (asyncio event loop by default)

    Returns:
        Multicast stream of `AppState` dicts, replaying the latest to late subscribers
    """
    scheduler = scheduler or AsyncIOScheduler()

    conf = config_nodes(
        settings,
        sources.persisted_config,
        sources.save_config,
        sources.toggle_expert,
        sources.toggle_theme,
        sources.toggle_unit,
    )
    formatter = unit_formatter(conf.unit, msat_usd_rate(sources.btc_usd, settings), settings)

    payments = payments_node(sources.payments, sources.outgoing, settings.clock)
    invoices = invoices_node(sources.invoices, sources.invoice, sources.incoming)

    errors = trace({"error": sources.error}, "walletflow.error")
    configured = trace({"config": conf.config}, "walletflow.config")
    traced = trace(
        {
            "loading": loading_node(sources.requests),
            "alert": alert_node(
                error=errors["error"],
                incoming=sources.incoming,
                outgoing=sources.outgoing,
                save_config=sources.save_config,
                dismiss=sources.dismiss,
                formatter=formatter,
                settings=settings,
                scheduler=scheduler,
            ),
            "rpc_history": rpc_history_node(
                sources.rpc_result, sources.clear_history, settings.history_limit
            ),
            "rpc_request": sources.rpc_request,
        },
        "walletflow.model",
    )

    state = combine_available(
        config=configured["config"],
        page=sources.page,
        loading=traced["loading"],
        alert=traced["alert"],
        info=sources.info,
        peers=sources.peers,
        funds=sources.funds,
        btc_usd=sources.btc_usd,
        unit_formatter=formatter,
        channel_balance=channel_balance_node(sources.peers, sources.incoming, sources.outgoing),
        onchain_balance=onchain_balance_node(sources.funds),
        feed=feed_node(invoices, payments),
        feed_start=sources.feed_start,
        amount_form=amount_form(
            sources.amount_input, formatter, merge(sources.page, sources.go_receive)
        ),
        rpc_history=traced["rpc_history"],
    )
    # console requests are only logged; they feed no derived value
    return merge(state, traced["rpc_request"].ignore_elements()).share_replay(1)


__all__ = ["AppState", "Sources", "combine_available", "build_model"]
