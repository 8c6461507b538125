"""
walletflow Settings - Static Configuration Tables
=================================================

Everything the model treats as fixed for its lifetime: the option lists that
settings cycle through, the unit conversion tables, and a handful of limits.
`ModelSettings` is immutable and handed to `build_model`; nothing here is
process-wide mutable state.
"""

import os
import time
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Tuple

THEMES: Tuple[str, ...] = tuple(
    "cerulean cosmo cyborg dark darkly flatly journal litera lumen lux materia minty "
    "pulse sandstone simplex sketchy slate solar spacelab superhero united yeti".split()
)

UNITS: Tuple[str, ...] = ("sat", "bits", "milli", "btc", "usd")

# Display units per millisatoshi
UNIT_RATES: Mapping[str, Decimal] = MappingProxyType(
    {
        "sat": Decimal("0.001"),
        "bits": Decimal("0.00001"),
        "milli": Decimal("0.00000001"),
        "btc": Decimal("0.00000000001"),
    }
)

# Smallest displayed increment per unit
UNIT_STEPS: Mapping[str, Decimal] = MappingProxyType({**UNIT_RATES, "usd": Decimal("0.00001")})

MSAT_PER_BTC = 100_000_000_000


def _wall_clock() -> int:
    return int(time.time())


@dataclass(frozen=True)
class ModelSettings:
    """
    Static tables and limits for one model instance.

    Attributes:
        themes: Ordered theme names the theme toggle cycles through
        units: Ordered display units the unit toggle cycles through
        unit_rates: Fixed display-units-per-msat rates; units without one use the live price
        unit_steps: Formatting precision per unit
        default_theme: Theme used when persisted config has none
        default_unit: Unit used when persisted config has none
        default_server: Server used when persisted config has none
        history_limit: Entries kept in the RPC console history
        settings_saved_delay: Seconds between a save and its confirmation alert
        msat_per_btc: Divisor turning a BTC price into a per-msat price
        clock: Wall-clock seconds, used to stamp completed outgoing payments
    """

    themes: Tuple[str, ...] = THEMES
    units: Tuple[str, ...] = UNITS
    unit_rates: Mapping[str, Decimal] = field(default_factory=lambda: UNIT_RATES)
    unit_steps: Mapping[str, Decimal] = field(default_factory=lambda: UNIT_STEPS)
    default_theme: str = "yeti"
    default_unit: str = "sat"
    default_server: Optional[str] = None
    history_limit: int = 20
    settings_saved_delay: float = 0.001
    msat_per_btc: int = MSAT_PER_BTC
    clock: Callable[[], int] = field(default=_wall_clock, compare=False)

    def __post_init__(self):
        if not self.themes or not self.units:
            raise ValueError("themes and units must not be empty")
        if self.default_theme not in self.themes:
            raise ValueError(f"Unknown default theme: {self.default_theme!r}")
        if self.default_unit not in self.units:
            raise ValueError(f"Unknown default unit: {self.default_unit!r}")
        missing = [unit for unit in self.units if unit not in self.unit_steps]
        if missing:
            raise ValueError(f"No formatting step for units: {', '.join(missing)}")
        if self.history_limit < 0:
            raise ValueError("history_limit must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ModelSettings":
        """
        Settings for the current build target.

        Web builds are served by the node itself, so their default server is
        the page's own origin (".").
        """
        environ = os.environ if environ is None else environ
        default_server = "." if environ.get("BUILD_TARGET") == "web" else None
        return cls(**{"default_server": default_server, **overrides})


DEFAULT_SETTINGS = ModelSettings()
