"""
walletflow Debug - Stream Tracing
=================================

Logs every value flowing through selected streams, one logger per namespace:

- `walletflow.model` - loading counter, alerts, RPC console traffic
- `walletflow.error` - errors forwarded by the transport
- `walletflow.config` - persisted and live settings

Enable with the standard logging setup, e.g.
`logging.getLogger("walletflow.config").setLevel(logging.DEBUG)`.
"""

import logging
from typing import Dict, Mapping

from .stream import Stream


def trace(streams: Mapping[str, Stream], namespace: str) -> Dict[str, Stream]:
    """
    Wrap each stream so its values are logged at DEBUG under `namespace`.

    Returns the wrapped streams by name; values pass through untouched.
    """
    log = logging.getLogger(namespace)

    def traced(name: str, stream: Stream) -> Stream:
        def log_value(value):
            if log.isEnabledFor(logging.DEBUG):
                log.debug(f"{name}: {value!r}")

        return stream.tap(log_value)

    return {name: traced(name, stream) for name, stream in streams.items()}
