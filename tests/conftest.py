from __future__ import annotations

import pytest

from anonchatd.config import HubRuntimeConfig
from anonchatd.service import HubService


@pytest.fixture
def hub() -> HubService:
    return HubService(HubRuntimeConfig())
