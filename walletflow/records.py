"""
walletflow Records - Explicit Shapes for Node Payloads
======================================================

Frozen records for everything that flows through the model: RPC listings
(invoices, payments, peers, funds), feed entries, alerts and configuration.

Records are built at the boundary with `from_rpc(mapping)`, which keeps the
fields a record declares and ignores the rest. Validating payloads is the
collaborator's job; a missing field simply stays at its default.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping, Optional, Tuple


def _known_fields(cls, data: Mapping[str, Any]) -> dict:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


class RpcRecord:
    """Mixin giving frozen dataclasses a forgiving `from_rpc` constructor."""

    @classmethod
    def from_rpc(cls, data: Mapping[str, Any]):
        return cls(**_known_fields(cls, data))


# ============================================================================
# INVOICES & PAYMENTS
# ============================================================================


@dataclass(frozen=True)
class Invoice(RpcRecord):
    """An invoice, or an incoming-payment event for one (same shape)."""

    label: str
    status: Optional[str] = None
    msatoshi: Optional[int] = None
    msatoshi_received: Optional[int] = None
    paid_at: Optional[int] = None
    description: Optional[str] = None
    expires_at: Optional[int] = None
    payment_hash: Optional[str] = None
    bolt11: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    def merged(self, update: "Invoice") -> "Invoice":
        """Copy of this invoice with every field `update` carries laid over it."""
        changes = {
            f.name: getattr(update, f.name)
            for f in fields(update)
            if getattr(update, f.name) is not None
        }
        return replace(self, **changes)


@dataclass(frozen=True)
class Payment(RpcRecord):
    """An outgoing payment, as listed by the node or announced on completion."""

    payment_hash: Optional[str] = None
    status: Optional[str] = None
    msatoshi: Optional[int] = None
    msatoshi_sent: Optional[int] = None
    created_at: Optional[int] = None
    destination: Optional[str] = None
    payment_preimage: Optional[str] = None


# ============================================================================
# PEERS, CHANNELS & FUNDS
# ============================================================================

NORMAL_CHANNEL_STATE = "CHANNELD_NORMAL"


@dataclass(frozen=True)
class Channel(RpcRecord):
    state: str
    msatoshi_to_us: int = 0
    msatoshi_total: Optional[int] = None
    channel_id: Optional[str] = None
    short_channel_id: Optional[str] = None

    @property
    def is_normal(self) -> bool:
        return self.state == NORMAL_CHANNEL_STATE


@dataclass(frozen=True)
class Peer(RpcRecord):
    id: str
    connected: bool = False
    channels: Optional[Tuple[Channel, ...]] = None

    @classmethod
    def from_rpc(cls, data: Mapping[str, Any]) -> "Peer":
        values = _known_fields(cls, data)
        if values.get("channels") is not None:
            values["channels"] = tuple(
                c if isinstance(c, Channel) else Channel.from_rpc(c) for c in values["channels"]
            )
        return cls(**values)


@dataclass(frozen=True)
class FundsOutput(RpcRecord):
    value: int
    txid: Optional[str] = None
    output: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class Funds(RpcRecord):
    """On-chain funds listing: unspent outputs plus channel funding entries."""

    outputs: Optional[Tuple[FundsOutput, ...]] = None
    channels: Tuple[Any, ...] = ()

    @classmethod
    def from_rpc(cls, data: Mapping[str, Any]) -> "Funds":
        values = _known_fields(cls, data)
        if values.get("outputs") is not None:
            values["outputs"] = tuple(
                o if isinstance(o, FundsOutput) else FundsOutput.from_rpc(o)
                for o in values["outputs"]
            )
        if "channels" in values:
            values["channels"] = tuple(values["channels"] or ())
        return cls(**values)


# ============================================================================
# REQUESTS
# ============================================================================


@dataclass(frozen=True)
class RpcRequest(RpcRecord):
    """An RPC call; background requests do not count towards the loading indicator."""

    method: str
    params: Tuple[Any, ...] = ()
    background: bool = False


# ============================================================================
# DERIVED RECORDS
# ============================================================================


@dataclass(frozen=True)
class FeedEntry:
    """One line of the payment feed."""

    direction: str  # "in" or "out"
    timestamp: Optional[int]
    amount: Optional[int]
    record: Any


@dataclass(frozen=True)
class Alert:
    severity: str  # "danger" or "success"
    message: str


@dataclass(frozen=True)
class Config:
    server: Optional[str]
    expert: bool
    theme: str
    unit: str


@dataclass(frozen=True)
class AmountFormFields:
    """State of the shared amount input used for invoices and custom payments."""

    msatoshi: Optional[int] = None
    amount: str = ""
    unit: Optional[str] = None
    step: Any = field(default=None)
