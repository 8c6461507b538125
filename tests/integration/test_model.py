"""Integration tests for the application-state stream."""

import logging
from decimal import Decimal

import pytest

from tests.utils import FROZEN_NOW, record
from walletflow import (
    Alert,
    AmountFormFields,
    Channel,
    Config,
    Funds,
    FundsOutput,
    Invoice,
    ModelSettings,
    Payment,
    Peer,
    RequestStream,
    RpcRequest,
    Sources,
    Subject,
    build_model,
    combine_available,
    of,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def sources(subjects):
    names = [
        "dismiss", "save_config", "toggle_expert", "toggle_theme", "toggle_unit", "page",
        "go_receive", "amount_input", "rpc_request", "rpc_result", "clear_history", "feed_start",
        "requests", "error", "invoice", "incoming", "outgoing", "funds", "payments", "invoices",
        "btc_usd", "info", "peers",
    ]  # fmt: skip
    return Sources(
        persisted_config=of({"unit": "sat", "theme": "darkly", "server": "https://node"}),
        **{name: subjects[name] for name in names},
    )


@pytest.fixture
def model(sources, settings, scheduler):
    return build_model(sources, settings, scheduler)


def test_combine_available_only_holds_names_seen_so_far():
    a, b = Subject(), Subject()
    state = record(combine_available(a=a, b=b))
    a.on_next(1)
    assert state.last == {"a": 1}

    b.on_next(2)
    a.on_next(3)
    assert state.last == {"a": 3, "b": 2}


def test_initial_state_has_only_seeded_fields(model):
    state = record(model)

    assert state.last["config"] == Config("https://node", False, "darkly", "sat")
    assert state.last["loading"] == 0
    assert state.last["channel_balance"] is None
    assert state.last["feed"] == ()
    assert state.last["rpc_history"] == ()
    assert state.last["amount_form"] == AmountFormFields(None, "", "sat", Decimal("0.001"))
    for absent in ("alert", "page", "info", "peers", "funds", "onchain_balance", "btc_usd"):
        assert absent not in state.last


def test_payment_flow_updates_balance_feed_and_alert(model, subjects):
    state = record(model)
    subjects.peers.on_next([Peer(id="p", channels=(Channel("CHANNELD_NORMAL", 50_000_000),))])
    subjects.invoices.on_next([])
    subjects.payments.on_next([])
    subjects.invoice.on_next(Invoice(label="coffee", status="unpaid", msatoshi=3_000_000))
    subjects.incoming.on_next(
        Invoice(label="coffee", status="paid", msatoshi_received=3_000_000, paid_at=FROZEN_NOW - 10)
    )
    subjects.outgoing.on_next(Payment(payment_hash="h", msatoshi=1_000_000, msatoshi_sent=1_000_100))

    latest = state.last
    assert latest["channel_balance"] == 50_000_000 + 3_000_000 - 1_000_100
    assert [(e.direction, e.timestamp) for e in latest["feed"]] == [
        ("out", FROZEN_NOW),
        ("in", FROZEN_NOW - 10),
    ]
    assert latest["alert"] == Alert("success", "Sent payment of 1,000 sat")


def test_unit_toggle_reformats_alert_and_amount(model, subjects):
    state = record(model)
    subjects.amount_input.on_next("1000")
    subjects.incoming.on_next(Invoice(label="x", msatoshi_received=100_000_000))
    subjects.toggle_unit.on_next(1)

    latest = state.last
    assert latest["config"].unit == "bits"
    assert latest["alert"].message == "Received payment of 1,000 bits"
    assert latest["amount_form"] == AmountFormFields(1_000_000, "10", "bits", Decimal("0.00001"))


def test_usd_amounts_wait_for_price(model, subjects):
    state = record(model)
    for _ in range(4):
        subjects.toggle_unit.on_next(1)
    assert state.last["config"].unit == "usd"
    assert state.last["unit_formatter"](1000).startswith("⌛")

    subjects.btc_usd.on_next(40_000)
    assert state.last["unit_formatter"](100_000_000_000) == "40,000 usd"
    assert state.last["btc_usd"] == 40_000


def test_page_change_resets_amount(model, subjects):
    state = record(model)
    subjects.amount_input.on_next("5")
    subjects.page.on_next("send")

    assert state.last["page"] == "send"
    assert state.last["amount_form"].msatoshi is None
    assert state.last["amount_form"].amount == ""


def test_loading_counter_and_history(model, subjects):
    state = record(model)
    response = Subject()
    subjects.requests.on_next(RequestStream(RpcRequest("pay"), response))
    assert state.last["loading"] == 1

    response.on_error(RuntimeError("route not found"))
    subjects.error.on_next(RuntimeError("route not found"))
    subjects.rpc_result.on_next({"method": "getinfo"})

    assert state.last["loading"] == 0
    assert state.last["alert"] == Alert("danger", "route not found")
    assert state.last["rpc_history"] == ({"method": "getinfo"},)


def test_settings_saved_confirmation(model, subjects, scheduler, settings):
    state = record(model)
    subjects.save_config.on_next({"server": "https://new"})
    assert state.last["config"].server == "https://new"
    assert "alert" not in state.last

    scheduler.advance_by(settings.settings_saved_delay)
    assert state.last["alert"] == Alert("success", "Settings saved successfully")


def test_onchain_and_passthrough_fields(model, subjects):
    state = record(model)
    subjects.funds.on_next(Funds(outputs=(FundsOutput(value=21_000),)))
    subjects.info.on_next({"id": "node"})
    subjects.feed_start.on_next(10)

    assert state.last["onchain_balance"] == 21_000
    assert state.last["info"] == {"id": "node"}
    assert state.last["feed_start"] == 10


def test_state_is_multicast_with_replay(model, subjects):
    """Late subscribers get the latest state; both share the same upstream."""
    early = record(model)
    subjects.page.on_next("home")
    late = record(model)

    assert late.values == [early.last]

    subjects.toggle_expert.on_next(None)
    assert early.last is late.last
    assert late.last["config"].expert is True


def test_default_sources_never_emit():
    state = record(build_model(Sources(), ModelSettings()))

    assert state.last["config"] == Config(None, False, "yeti", "sat")
    assert state.last["feed"] == ()
    assert "onchain_balance" not in state.last


def test_model_traffic_is_logged(model, subjects, caplog):
    with caplog.at_level(logging.DEBUG, logger="walletflow"):
        record(model)
        subjects.rpc_request.on_next(RpcRequest("getinfo"))
        subjects.error.on_next(RuntimeError("boom"))

    loggers = {r.name for r in caplog.records}
    assert {"walletflow.model", "walletflow.error", "walletflow.config"} <= loggers


@pytest.mark.parametrize("text", ["nan", "NaN", "Infinity", "sNaN", "12abc"])
def test_unreadable_amount_keeps_state_alive(model, subjects, text):
    """A bad value on one branch never ends the shared state stream."""
    state = record(model)
    subjects.amount_input.on_next(text)

    assert state.errors == []
    assert not state.completed
    assert state.last["amount_form"].msatoshi is None

    subjects.page.on_next("send")
    subjects.amount_input.on_next("3")

    assert state.last["page"] == "send"
    assert state.last["amount_form"].msatoshi == 3000


def test_failed_request_and_transport_error_keep_state_alive(model, subjects):
    state = record(model)
    subjects.requests.on_next(RequestStream(RpcRequest("pay"), Subject()))
    subjects.requests.on_next(RequestStream(RpcRequest("getinfo"), of(1).map(lambda _: 1 / 0)))
    subjects.error.on_next(ConnectionError("node unreachable"))
    subjects.info.on_next({"id": "node"})

    assert state.errors == []
    assert state.last["loading"] == 1
    assert state.last["alert"] == Alert("danger", "node unreachable")
    assert state.last["info"] == {"id": "node"}
