"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone

import pytest

# Ensure src/ is on sys.path for tests so the src layout is used during test runs
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from ptd.entities import Tournament  # noqa: E402
from ptd.envelope import Envelope, Meta  # noqa: E402
from ptd.ids import IDGenerator  # noqa: E402
from ptd.signing import Signer  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_ptd_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep PTD_* variables from the developer's shell out of the tests."""

    for name in list(os.environ):
        if name.startswith("PTD_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def generator() -> IDGenerator:
    return IDGenerator()


@pytest.fixture
def signer() -> Signer:
    # Deterministic test key (32-byte seed) for reproducible signatures
    return Signer(bytes(range(32)), "test-key-1", "Test Federation")


@pytest.fixture
def tournament_envelope(generator: IDGenerator) -> Envelope[Tournament]:
    created = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
    return Envelope[Tournament](
        id=generator.generate("tournament"),
        type="tournament",
        spec=Tournament(
            name="Test",
            status="published",
            start_date=datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc),
            end_date=datetime(2025, 7, 10, 18, 0, tzinfo=timezone.utc),
        ),
        meta=Meta(
            schema_version="ptd.v1.tournament@1.0.0",
            version=1,
            created_at=created,
            updated_at=created,
            source="test:unit",
        ),
    )
