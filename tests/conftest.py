from __future__ import annotations

import time
from typing import Any, Callable, Optional

import httpx
import pytest
import structlog

from linear_tasks import LinearClient

from .fakes import graphql_transport


@pytest.fixture(autouse=True)
def _reset_structlog():
    # CLI tests bind the logger to CliRunner's stderr; don't leak that.
    yield
    structlog.reset_defaults()


@pytest.fixture()
def client_factory() -> Callable[..., LinearClient]:
    def build(views: dict[str, list[list[dict[str, Any]]]], seen: Optional[list[httpx.Request]] = None) -> LinearClient:
        return LinearClient("lin_api_test", transport=graphql_transport(views, seen))
    return build


@pytest.fixture()
def tokyo_tz(monkeypatch):
    """Run with a host timezone far from UTC so local-time reads show up."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is POSIX only")
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
