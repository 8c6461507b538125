"""
Test utilities for walletflow.

Shared helpers for observing what a stream emits.
"""

from .recorder import Recorder, record

# Wall-clock value used by the frozen `settings` fixture
FROZEN_NOW = 1_700_000_000

__all__ = ["Recorder", "record", "FROZEN_NOW"]
