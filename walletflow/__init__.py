"""
walletflow - Derived State for a Lightning Payment Node

A push-based stream layer and the merge algorithms that keep a node's balances,
payment feed, alerts and unit-converted amounts consistent while periodic
snapshots and real-time events race each other.
"""

from .aggregates import RequestStream
from .model import AppState, Sources, build_model, combine_available
from .patches import Patch, apply, sync_patch
from .records import (
    Alert,
    AmountFormFields,
    Channel,
    Config,
    FeedEntry,
    Funds,
    FundsOutput,
    Invoice,
    Payment,
    Peer,
    RpcRequest,
)
from .scheduler import AsyncIOScheduler, Scheduler, VirtualTimeScheduler
from .settings import DEFAULT_SETTINGS, ModelSettings
from .stream import (
    NO_SEED,
    EmptyStreamError,
    FlattenMode,
    ReplaySubject,
    Stream,
    Subject,
    Subscription,
    WalletflowError,
    combine,
    combine_latest,
    concat,
    defer,
    empty,
    from_iterable,
    merge,
    never,
    of,
    throw,
    timer,
)
from .units import PENDING, UnitFormatter, format_amount, parse_amount

__all__ = [
    # Stream layer
    "Stream",
    "Subject",
    "ReplaySubject",
    "Subscription",
    "FlattenMode",
    "of",
    "from_iterable",
    "empty",
    "never",
    "throw",
    "defer",
    "timer",
    "merge",
    "combine_latest",
    "combine",
    "concat",
    # Schedulers
    "Scheduler",
    "AsyncIOScheduler",
    "VirtualTimeScheduler",
    # Merge algorithm
    "Patch",
    "apply",
    "sync_patch",
    # Records
    "Invoice",
    "Payment",
    "Channel",
    "Peer",
    "FundsOutput",
    "Funds",
    "RpcRequest",
    "FeedEntry",
    "Alert",
    "Config",
    "AmountFormFields",
    # Conversion
    "UnitFormatter",
    "format_amount",
    "parse_amount",
    "PENDING",
    # Model
    "ModelSettings",
    "DEFAULT_SETTINGS",
    "Sources",
    "AppState",
    "RequestStream",
    "build_model",
    "combine_available",
    # Exceptions
    "WalletflowError",
    "EmptyStreamError",
    # Sentinel
    "NO_SEED",
]
