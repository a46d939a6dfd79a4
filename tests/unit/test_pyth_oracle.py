"""Unit tests for Pyth oracle: price response parsing and error handling."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from leverage_engine.config import PythConfig
from leverage_engine.errors import InvalidPriceData
from leverage_engine.oracles.pyth import PythOracle, normalize_price


@pytest.fixture()
def oracle() -> PythOracle:
    return PythOracle(
        PythConfig(
            hermes_url="https://hermes.example.com/v2/updates/price/latest",
            feeds={"ETH": "0xaaa111", "WBTC": "bbb222", "USDC": "ccc333"},
        )
    )


def _make_pyth_response(items: list[dict]) -> dict:
    return {"parsed": items}


def _mock_session(status: int = 200, data: dict | None = None) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data or {})
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.get = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestNormalizePrice:
    def test_same_exponent(self) -> None:
        assert normalize_price(350000000, -8) == 350000000

    def test_finer_exponent_truncates(self) -> None:
        assert normalize_price(99_987_654_321, -11) == 99_987_654

    def test_coarser_exponent_scales_up(self) -> None:
        assert normalize_price(2000, 0) == 2000 * 10**8


class TestPythOraclePrices:
    @pytest.mark.asyncio
    async def test_parses_response_in_request_order(self, oracle: PythOracle) -> None:
        mock_data = _make_pyth_response(
            [
                {"id": "aaa111", "price": {"price": "200000000000", "expo": "-8"}},
                {"id": "bbb222", "price": {"price": "6000000000000", "expo": "-8"}},
                {"id": "ccc333", "price": {"price": "99990000", "expo": "-8"}},
            ]
        )
        session = _mock_session(data=mock_data)

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.prices_usd(["USDC", "ETH"])

        assert prices == [99990000, 200000000000]
        url = session.get.call_args.args[0]
        assert "ids[]=0xaaa111" in url
        assert "ids[]=ccc333" in url
        assert "bbb222" not in url

    @pytest.mark.asyncio
    async def test_http_error_raises(self, oracle: PythOracle) -> None:
        session = _mock_session(status=500)

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(InvalidPriceData, match="HTTP 500"):
                    await oracle.prices_usd(["ETH"])

    @pytest.mark.asyncio
    async def test_network_error_raises(self, oracle: PythOracle) -> None:
        session = _mock_session()
        session.get = MagicMock(side_effect=ConnectionError("timeout"))

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(InvalidPriceData) as exc_info:
                    await oracle.prices_usd(["ETH"])

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_missing_price_in_response_raises(self, oracle: PythOracle) -> None:
        mock_data = _make_pyth_response(
            [{"id": "aaa111", "price": {"price": "200000000000", "expo": "-8"}}]
        )
        session = _mock_session(data=mock_data)

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(InvalidPriceData, match="WBTC"):
                    await oracle.prices_usd(["ETH", "WBTC"])

    @pytest.mark.asyncio
    async def test_negative_price_raises(self, oracle: PythOracle) -> None:
        mock_data = _make_pyth_response(
            [{"id": "aaa111", "price": {"price": "-5", "expo": "-8"}}]
        )
        session = _mock_session(data=mock_data)

        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("leverage_engine.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(InvalidPriceData):
                    await oracle.prices_usd(["ETH"])

    @pytest.mark.asyncio
    async def test_unconfigured_asset_raises_without_request(self, oracle: PythOracle) -> None:
        with patch("leverage_engine.oracles.pyth.aiohttp.ClientSession") as session_cls:
            with pytest.raises(InvalidPriceData, match="DOGE"):
                await oracle.prices_usd(["DOGE"])
        session_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_request_returns_empty(self, oracle: PythOracle) -> None:
        assert await oracle.prices_usd([]) == []
