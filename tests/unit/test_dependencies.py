"""
Unit Tests - Service Wiring
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from investment_tracker.data_providers.adapters.frankfurter import FrankfurterAdapter
from investment_tracker.data_providers.adapters.stooq import StooqAdapter
from investment_tracker.dependencies import MarketDataProviders, build_services, create_providers


class TestProviders:

    def test_default_chains(self):
        providers = create_providers()
        assert [type(a) for a in providers.prices] == [StooqAdapter]
        assert [type(a) for a in providers.fx] == [FrankfurterAdapter, StooqAdapter]
        # one Stooq session serves both chains
        assert providers.prices[0] is providers.fx[1]

    @pytest.mark.asyncio
    async def test_shared_adapter_closed_once(self):
        shared = MagicMock()
        shared.close = AsyncMock()
        other = MagicMock()
        other.close = AsyncMock()

        await MarketDataProviders(prices=[shared], fx=[other, shared]).close()

        shared.close.assert_awaited_once()
        other.close.assert_awaited_once()


class TestBuildServices:

    def test_services_share_cache_and_valuation(self):
        container = build_services(AsyncMock(), create_providers())

        assert container.performance.market_data is container.market_data
        assert container.ledgers.market_data is container.market_data
        assert container.snapshots.valuation_service is container.valuation
        assert container.performance.snapshot_service is container.snapshots
