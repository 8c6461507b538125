"""
Shared pytest fixtures and configuration for walletflow tests.
"""

import pytest

from tests.utils import FROZEN_NOW
from walletflow import ModelSettings, Subject, VirtualTimeScheduler


@pytest.fixture
def settings():
    """Default tables with a frozen wall clock."""
    return ModelSettings(clock=lambda: FROZEN_NOW)


@pytest.fixture
def scheduler():
    """A scheduler whose clock only moves when the test says so."""
    return VirtualTimeScheduler()


@pytest.fixture
def subjects():
    """Fresh hot sources, created on first access by name."""

    class Subjects(dict):
        def __missing__(self, name):
            subject = self[name] = Subject()
            return subject

        def __getattribute__(self, name):
            # Every public attribute is a subject, even names like `clear`
            # that would otherwise resolve to dict methods.
            if name.startswith("_"):
                return super().__getattribute__(name)
            return self[name]

    return Subjects()
