from __future__ import annotations

import pytest

from src.services.signal_scoring_service import SignalScoringService


@pytest.fixture(scope="session")
def scoring() -> SignalScoringService:
    return SignalScoringService()
