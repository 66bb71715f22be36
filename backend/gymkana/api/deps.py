"""FastAPI dependencies: process-wide store and notifier live on `app.state`."""
from __future__ import annotations

from fastapi import Request

from gymkana.notifier import ChangeNotifier
from gymkana.store import DataStore


def get_store(request: Request) -> DataStore:
    return request.app.state.store


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier
