"""
Storage contract for client-only preferences.

Anything kept here (the locally-held API key, the display timezone) stays on
the device: the sync layer reads it to build the merged Settings view but never
sends it to the ledger API.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from shared.ledger_model import LocalPreferences


@runtime_checkable
class LocalPreferenceStore(Protocol):
    """Interface for wherever the host application keeps device-local preferences."""

    def load(self) -> LocalPreferences:
        ...

    def save(self, preferences: LocalPreferences) -> None:
        ...


class InMemoryPreferenceStore:
    """Process-local store; the default when the host supplies nothing durable."""

    def __init__(self, preferences: LocalPreferences | None = None) -> None:
        self._preferences = preferences or LocalPreferences()

    def load(self) -> LocalPreferences:
        return self._preferences

    def save(self, preferences: LocalPreferences) -> None:
        self._preferences = preferences
