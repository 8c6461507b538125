"""
walletflow Alerts - User-Visible Messages
=========================================

Merges every alert source into one stream of `Alert | None` and resolves amount
placeholders with the unit formatter that is current when the alert is emitted.

Payment alerts carry the raw msat amount as a placeholder (`@{{123000}}`), not a
formatted string, so switching units or receiving a new price re-renders the
alert currently on screen.
"""

import re
from typing import Optional

from .records import Alert
from .settings import ModelSettings
from .stream import Stream, combine_latest, merge, timer
from .units import UnitFormatter

DANGER = "danger"
SUCCESS = "success"

SETTINGS_SAVED = "Settings saved successfully"

AMOUNT_PLACEHOLDER = re.compile(r"@\{\{(\d+)\}\}")


def amount_placeholder(msat: Optional[int]) -> str:
    return "@{{%d}}" % (msat or 0)


def format_alert(alert: Optional[Alert], formatter: UnitFormatter) -> Optional[Alert]:
    """Substitute every amount placeholder in the message."""
    if alert is None:
        return None
    message = AMOUNT_PLACEHOLDER.sub(lambda match: formatter(match.group(1)), alert.message)
    return Alert(alert.severity, message)


def alert_node(
    *,
    error: Stream,
    incoming: Stream,
    outgoing: Stream,
    save_config: Stream,
    dismiss: Stream,
    formatter: Stream,
    settings: ModelSettings,
    scheduler,
) -> Stream:
    """
    The alert to show, or None once dismissed.

    - errors -> danger, with the error text
    - incoming/outgoing payments -> success, with an amount placeholder
    - saving settings -> success after `settings.settings_saved_delay`
      (a newer save restarts the delay)
    - dismiss -> None
    """
    alerts = merge(
        error.map(lambda err: Alert(DANGER, str(err))),
        incoming.map(
            lambda inv: Alert(SUCCESS, f"Received payment of {amount_placeholder(inv.msatoshi_received)}")
        ),
        outgoing.map(lambda pay: Alert(SUCCESS, f"Sent payment of {amount_placeholder(pay.msatoshi)}")),
        save_config.switch_map(lambda _: timer(settings.settings_saved_delay, scheduler)).map_to(
            Alert(SUCCESS, SETTINGS_SAVED)
        ),
        dismiss.map_to(None),
    )
    return combine_latest(alerts, formatter, combiner=format_alert)


__all__ = [
    "DANGER",
    "SUCCESS",
    "SETTINGS_SAVED",
    "AMOUNT_PLACEHOLDER",
    "amount_placeholder",
    "format_alert",
    "alert_node",
]
