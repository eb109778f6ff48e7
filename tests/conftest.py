from __future__ import annotations

import pytest

from sentinelid.core.bootstrap import build_broker
from sentinelid.core.config import ConfigPaths, SentinelConfig


@pytest.fixture
def paths(tmp_path):
    return ConfigPaths(root=str(tmp_path))


@pytest.fixture
def make_broker(paths):
    """
    Factory for started brokers rooted in tmp_path. All brokers built here
    share the same state directory, so a second one acts as a restart.
    """
    made = []

    def _make(cfg: SentinelConfig | None = None, *, checker=None, logger=None):
        b = build_broker(cfg or SentinelConfig(), paths=paths, checker=checker, logger=logger)
        made.append(b)
        return b.start()

    yield _make
    for b in made:
        b.close()


@pytest.fixture
def broker(make_broker):
    return make_broker()
