"""
walletflow Units - Unit and Currency Conversion
===============================================

Turns millisatoshi amounts into display strings in the selected unit and back.

All arithmetic is `decimal.Decimal` in a 50-digit context; floats never touch an
amount. Display rates are "display units per msat": a fixed table entry for
bitcoin units, the live price for fiat.

Nodes:
- `msat_usd_rate`: BTC/USD price feed -> USD per msat, `None` until the first price
- `unit_formatter`: current unit and rate -> `UnitFormatter`, re-derived on every
  unit or rate change so a displayed amount never uses a stale rate
- `amount_form`: the shared amount input, kept in step with unit and rate
"""

from dataclasses import dataclass, replace
from decimal import ROUND_DOWN, ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext
from typing import Any, Optional, Union

from .patches import Patch, fold_patches
from .records import AmountFormFields
from .settings import ModelSettings
from .stream import Stream, combine_latest, merge

PENDING = "⌛"

_DECIMAL_CONTEXT = Context(prec=50)

Amount = Union[int, str, Decimal]


def _places(step: Decimal) -> int:
    """Number of decimal places a step allows (0.001 -> 3)."""
    exponent = Decimal(step).normalize().as_tuple().exponent
    return max(0, -exponent)


def format_amount(
    msat: Optional[Amount], rate: Optional[Decimal], step: Decimal, grouped: bool = True
) -> str:
    """
    Format a msat amount in a display unit.

    The converted amount is rounded half-up to the precision of `step`, trailing
    fractional zeros are dropped, and thousands are separated with commas when
    `grouped`. A missing amount or rate formats as "".
    """
    if msat is None or msat == "" or rate is None:
        return ""
    with localcontext(_DECIMAL_CONTEXT):
        amount = Decimal(msat) * Decimal(rate)
        amount = amount.quantize(Decimal(1).scaleb(-_places(step)), rounding=ROUND_HALF_UP)
    text = f"{amount:,f}" if grouped else f"{amount:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def parse_amount(amount: Optional[Amount], rate: Optional[Decimal]) -> Optional[int]:
    """
    Convert a display amount back to msat, truncating to a whole msat.

    Returns None when the amount is empty, unreadable or not a finite number
    (NaN, Infinity), or no rate is known.
    """
    if amount is None or amount == "" or not rate:
        return None
    try:
        with localcontext(_DECIMAL_CONTEXT):
            value = Decimal(str(amount).replace(",", "").strip())
            if not value.is_finite():
                return None
            msat = (value / Decimal(rate)).quantize(Decimal(1), rounding=ROUND_DOWN)
    except InvalidOperation:
        return None
    return int(msat)


@dataclass(frozen=True)
class UnitFormatter:
    """
    Formats msat amounts as "<amount> <unit>" at a fixed unit and rate.

    Shows the pending placeholder instead of an amount while no rate is known.
    """

    unit: str
    rate: Optional[Decimal]
    step: Decimal

    def __call__(self, msat: Amount) -> str:
        amount = format_amount(msat, self.rate, self.step) if self.rate else PENDING
        return f"{amount} {self.unit}"

    def parse(self, amount: Optional[Amount]) -> Optional[int]:
        return parse_amount(amount, self.rate)


# ============================================================================
# RATE NODES
# ============================================================================


def msat_usd_rate(btc_usd: Stream, settings: ModelSettings) -> Stream:
    """USD per msat from a BTC/USD price feed; starts with None."""

    def per_msat(price):
        with localcontext(_DECIMAL_CONTEXT):
            return Decimal(str(price)) / settings.msat_per_btc

    return btc_usd.map(per_msat).start_with(None)


def effective_rate(unit: str, usd_rate: Optional[Decimal], settings: ModelSettings):
    """The fixed rate for the unit if it has one, else the live rate."""
    return settings.unit_rates.get(unit) or usd_rate


def unit_formatter(unit: Stream, usd_rate: Stream, settings: ModelSettings) -> Stream:
    """Current `UnitFormatter`, re-emitted whenever the unit or the live rate changes."""
    return combine_latest(
        unit,
        usd_rate,
        combiner=lambda u, r: UnitFormatter(u, effective_rate(u, r, settings), settings.unit_steps[u]),
    )


# ============================================================================
# AMOUNT FORM
# ============================================================================


@dataclass(frozen=True)
class EnterAmount(Patch):
    """The user typed an amount in the current unit."""

    text: str
    formatter: UnitFormatter

    def apply_to(self, state: AmountFormFields) -> AmountFormFields:
        f = self.formatter
        return AmountFormFields(f.parse(self.text), self.text or "", f.unit, f.step)


@dataclass(frozen=True)
class ChangeRate(Patch):
    """
    The unit or its rate changed.

    Same unit: the typed text stays and msat follows the new rate (or, with no
    text yet, the text is derived from msat). New unit: msat stays and the text
    is re-derived in the new unit.
    """

    formatter: UnitFormatter

    def apply_to(self, state: AmountFormFields) -> AmountFormFields:
        f = self.formatter
        if state.unit == f.unit and state.amount:
            return replace(state, msatoshi=f.parse(state.amount), step=f.step)
        text = format_amount(state.msatoshi, f.rate, f.step, grouped=False)
        return replace(state, amount=text, unit=f.unit, step=f.step)


@dataclass(frozen=True)
class ResetAmount(Patch):
    def apply_to(self, state: AmountFormFields) -> AmountFormFields:
        return replace(state, msatoshi=None, amount="")


def amount_form(amount_input: Stream, formatter: Stream, resets: Stream) -> Stream:
    """
    State of the amount field shared by invoice creation and custom payments.

    Args:
        amount_input: Text typed by the user, in the current unit
        formatter: `unit_formatter` node
        resets: Any value clears the field (entering the receive view, page changes)

    Emits `AmountFormFields` once the unit is known.
    """
    patches = merge(
        amount_input.with_latest_from(formatter, combiner=EnterAmount),
        formatter.map(ChangeRate),
        resets.map_to(ResetAmount()),
    )
    return fold_patches(patches, AmountFormFields()).filter(lambda fields: fields.unit is not None)


__all__ = [
    "PENDING",
    "format_amount",
    "parse_amount",
    "UnitFormatter",
    "msat_usd_rate",
    "effective_rate",
    "unit_formatter",
    "EnterAmount",
    "ChangeRate",
    "ResetAmount",
    "amount_form",
]
