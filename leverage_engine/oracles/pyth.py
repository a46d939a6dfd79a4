"""Pyth Network price oracle service."""
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..constants import USD_DECIMALS
from ..errors import InvalidPriceData

logger = logging.getLogger(__name__)


def normalize_price(price_raw: int, expo: int) -> int:
    """Rescale a Pyth ``price * 10^expo`` to the engine's 8-decimal convention."""
    shift = USD_DECIMALS + expo
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**(-shift)


class PythOracle:
    """Fetch USD prices from the Pyth Network Hermes API."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.timeout = config.timeout

    async def _fetch_parsed(self, feed_ids: list[str]) -> list[dict]:
        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        raise InvalidPriceData(
                            f"Pyth returned HTTP {response.status}",
                            {"status": response.status},
                        )
                    data = await response.json()
        except InvalidPriceData:
            raise
        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            raise InvalidPriceData(f"Pyth request failed: {e}") from e

        return data.get("parsed", [])

    async def prices_usd(self, assets: list[str]) -> list[int]:
        """Return one 8-decimal USD price per requested asset, in order."""
        missing = [a for a in assets if a not in self.price_feeds]
        if missing:
            raise InvalidPriceData(
                f"No Pyth feed configured for {', '.join(missing)}",
                {"assets": missing},
            )
        if not assets:
            return []

        feed_ids = sorted({self.price_feeds[a] for a in assets})
        parsed = await self._fetch_parsed(feed_ids)

        by_feed: dict[str, int] = {}
        for item in parsed:
            feed_id = item.get("id", "")
            price_data = item.get("price", {})
            price_raw = int(price_data.get("price", 0))
            expo = int(price_data.get("expo", 0))
            by_feed[feed_id.removeprefix("0x")] = normalize_price(price_raw, expo)

        prices: list[int] = []
        for asset in assets:
            feed_id = self.price_feeds[asset].removeprefix("0x")
            price = by_feed.get(feed_id, 0)
            if price <= 0:
                raise InvalidPriceData(
                    f"Invalid Pyth price for {asset}: {price}",
                    {"asset": asset, "price": price},
                )
            prices.append(price)

        logger.debug("Fetched Pyth prices: %s", dict(zip(assets, prices)))
        return prices
