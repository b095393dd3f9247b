"""
Exchange rate service.
Fetches rates from exchangerate.host and caches them in-process for an hour.
"""
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import requests

from errors import RateUnavailable

logger = logging.getLogger(__name__)

RATE_REQUEST_HEADERS = {
    "User-Agent": "LearnHubRateService/1.0",
    "Accept": "application/json",
}


class RateCache:
    """
    Timestamped rate entries keyed by (base, symbols).
    The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, ttl_seconds: float = 3600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[float, Dict[str, float]]] = {}

    def get(self, base: str, symbols: str) -> Optional[Dict[str, float]]:
        entry = self._entries.get((base, symbols))
        if not entry:
            return None
        stored_at, rates = entry
        if self.clock() - stored_at >= self.ttl_seconds:
            self._entries.pop((base, symbols), None)
            return None
        return rates

    def set(self, base: str, symbols: str, rates: Dict[str, float]) -> None:
        self._entries[(base, symbols)] = (self.clock(), rates)

    def clear(self) -> None:
        self._entries.clear()


class ExchangeRateService:
    def __init__(
        self,
        cache: Optional[RateCache] = None,
        api_url: str = "https://api.exchangerate.host/latest",
        timeout: float = 5.0,
        session=None,
    ):
        self.cache = cache or RateCache()
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _fetch_rates(self, base: str, symbols: str) -> Dict[str, float]:
        try:
            response = self.session.get(
                self.api_url,
                params={"base": base, "symbols": symbols},
                timeout=self.timeout,
                headers=RATE_REQUEST_HEADERS,
            )
        except requests.RequestException as e:
            logger.warning(f"Rate API request failed for {base}->{symbols}: {e}")
            raise RateUnavailable(f"Rate API request failed: {e}")

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning(f"Rate API error {response.status_code} for {base}->{symbols}")
            raise RateUnavailable(
                f"Rate API error {response.status_code}",
                {"status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError:
            raise RateUnavailable("Rate API returned a malformed body")

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise RateUnavailable("Rate API response has no rates")
        return rates

    def get_rates(self, base: str, symbols: str) -> Dict[str, float]:
        """
        Rates for base -> each comma separated symbol.
        Served from cache within the TTL, otherwise one outbound request.
        """
        base = base.upper()
        symbols = symbols.upper()
        cached = self.cache.get(base, symbols)
        if cached is not None:
            return cached

        rates = self._fetch_rates(base, symbols)
        self.cache.set(base, symbols, rates)
        logger.info(f"Fetched exchange rates for {base}->{symbols}")
        return rates

    def get_rate(self, base: str, target: str) -> float:
        base = base.upper()
        target = target.upper()
        if base == target:
            return 1.0

        rates = self.get_rates(base, target)
        rate = rates.get(target)
        try:
            rate = float(rate)
        except (TypeError, ValueError):
            raise RateUnavailable(f"Rate not available for {base}->{target}")
        if rate <= 0 or rate != rate:
            raise RateUnavailable(f"Rate not available for {base}->{target}")
        return rate
