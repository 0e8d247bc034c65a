"""Ledger collaborators injected into request handlers."""

from __future__ import annotations

from loyalty_api.services.ledger import LedgerEventDispatcher, get_ledger_dispatcher


def get_event_dispatcher() -> LedgerEventDispatcher:
    return get_ledger_dispatcher()
