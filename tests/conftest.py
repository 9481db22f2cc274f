# tests/conftest.py
"""
Shared fixtures for the test suite.

The repo root goes on sys.path so `from session.session import Session`
works no matter where pytest is launched. Sessions are built around an
in-memory ledger client the test can drive directly.
"""

from __future__ import annotations

import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from client.base import ConsensusState
from client.memory import InMemoryLedgerClient
from session.session import Session


@pytest.fixture
def client():
    """In-memory ledger that is already in consensus"""
    return InMemoryLedgerClient(consensus=ConsensusState.ESTABLISHED)


@pytest.fixture
def session(client):
    return Session(client_factory=lambda configuration: client)


@pytest.fixture
def make_tx():
    from helpers import make_tx as _make_tx
    return _make_tx
