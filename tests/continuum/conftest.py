"""Fixtures for Continuum tests."""

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio

from continuum.engine import Continuum
from continuum.transport import CouchClient
from tests.fixtures.fake_couch import BASE_URL, FakeCouch


@pytest.fixture
def fake() -> FakeCouch:
    """An empty fake cluster."""
    return FakeCouch()


@pytest_asyncio.fixture
async def client(fake: FakeCouch) -> AsyncIterator[CouchClient]:
    """Couch client wired to the fake cluster."""
    couch = fake.client()
    yield couch
    await couch.aclose()


@pytest.fixture
def make_continuum(client: CouchClient) -> Callable[..., Continuum]:
    """Build engines against the fake cluster with no settle delay."""

    def _make(source: str = "alpha", **kwargs: Any) -> Continuum:
        kwargs.setdefault("couch_url", BASE_URL)
        kwargs.setdefault("settle_seconds", 0)
        kwargs.setdefault("interval", 1)
        return Continuum(source=source, client=client, **kwargs)

    return _make
