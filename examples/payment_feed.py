import asyncio
import logging

from walletflow import (
    AsyncIOScheduler,
    Channel,
    Invoice,
    ModelSettings,
    Payment,
    Peer,
    RequestStream,
    RpcRequest,
    Sources,
    Subject,
    build_model,
    of,
)

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Wiring the sources")
print("-" * 100)
print()

# Every source is a stream. Subjects stand in for the RPC transport and the UI here.
peers, payments, invoices = Subject(), Subject(), Subject()
invoice, incoming, outgoing = Subject(), Subject(), Subject()
requests, toggle_unit, save_config = Subject(), Subject(), Subject()

sources = Sources(
    persisted_config=of({"unit": "sat", "theme": "darkly"}),
    peers=peers,
    payments=payments,
    invoices=invoices,
    invoice=invoice,
    incoming=incoming,
    outgoing=outgoing,
    requests=requests,
    toggle_unit=toggle_unit,
    save_config=save_config,
)


def show(state):
    formatter = state.get("unit_formatter")
    balance = state.get("channel_balance")
    shown = formatter(balance) if formatter and balance is not None else "unknown"
    loading, feed, alert = state.get("loading"), state.get("feed", ()), state.get("alert")
    print(f"balance={shown:<22} loading={loading} feed={len(feed)} alert={alert}")


# ------------------------------------------------------------------------------------------------


async def main():
    # Timers (the "settings saved" alert) run on the running event loop.
    model = build_model(sources, ModelSettings.from_env(), AsyncIOScheduler())
    model.subscribe(show)

    print()
    print("=" * 100)
    print("Snapshots and live events")
    print("-" * 100)
    print()

    peers.on_next([Peer(id="02aa", channels=(Channel("CHANNELD_NORMAL", 250_000_000),))])
    invoices.on_next([])
    payments.on_next([])

    invoice.on_next(Invoice(label="coffee", status="unpaid", msatoshi=4_500_000))
    incoming.on_next(Invoice(label="coffee", status="paid", msatoshi_received=4_500_000, paid_at=1))
    outgoing.on_next(Payment(payment_hash="ab", msatoshi=1_200_000, msatoshi_sent=1_200_120))

    print()
    print("=" * 100)
    print("Switching units re-renders the balance and the alert")
    print("-" * 100)
    print()

    toggle_unit.on_next(1)
    toggle_unit.on_next(1)

    print()
    print("=" * 100)
    print("Requests in flight")
    print("-" * 100)
    print()

    response = Subject()
    requests.on_next(RequestStream(RpcRequest("listfunds"), response))
    response.on_next({"outputs": []})
    response.on_completed()

    print()
    print("=" * 100)
    print("Saving settings confirms after a short delay")
    print("-" * 100)
    print()

    save_config.on_next({"server": "https://node.example"})
    await asyncio.sleep(0.01)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
