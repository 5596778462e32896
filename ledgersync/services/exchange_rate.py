"""Currency conversion with month-granularity rate caching.

Rates are looked up for the first day of the month a transaction falls in
and cached per month for the lifetime of the converter's cache.
"""

import asyncio
import logging
import math
from datetime import date, datetime
from typing import Protocol

import httpx
from pydantic import BaseModel

from ledgersync.exceptions import NetworkError, RateUnavailable
from ledgersync.models import Transaction, round_amount

logger = logging.getLogger(__name__)


class RateProvider(Protocol):
    """Source of historical exchange rates."""

    async def get_rate(self, on: str, base: str, symbol: str) -> float:
        """Units of ``symbol`` per one ``base`` on ``on`` (YYYY-MM-DD)."""
        ...


class RateCheck(BaseModel):
    """Outcome of probing the rate provider."""

    success: bool
    rate: float | None = None
    date: str | None = None
    error: str | None = None


class RateCache:
    """Exchange rates keyed by first-of-month date (YYYY-MM-DD)."""

    def __init__(self, rates: dict[str, float] | None = None):
        self._rates: dict[str, float] = dict(rates or {})

    def get(self, month_key: str) -> float | None:
        return self._rates.get(month_key)

    def set(self, month_key: str, rate: float) -> None:
        self._rates[month_key] = rate

    def clear(self) -> None:
        self._rates.clear()

    def __contains__(self, month_key: object) -> bool:
        return month_key in self._rates

    def __len__(self) -> int:
        return len(self._rates)


class ExchangeRatesApiProvider:
    """Client for the exchangeratesapi.io historical endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "http://api.exchangeratesapi.io/v1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def get_rate(self, on: str, base: str, symbol: str) -> float:
        """
        Fetch one historical rate.

        Raises:
            RateUnavailable: If no key is configured or no usable rate is returned
            NetworkError: On timeouts and transport failures
        """
        if not self.api_key:
            raise RateUnavailable("Exchange rates API key not configured")

        params = {"access_key": self.api_key, "base": base, "symbols": symbol}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/{on}", params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Exchange rate request timed out for {on}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Exchange rate request failed for {on}: {e}") from e

        if response.status_code != 200:
            raise RateUnavailable(f"HTTP error! status: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RateUnavailable(f"Invalid JSON from exchange rate API: {e}") from e

        error = data.get("error")
        if error:
            detail = error.get("info") or error.get("message") if isinstance(error, dict) else error
            raise RateUnavailable(f"API error: {detail}")

        rate = (data.get("rates") or {}).get(symbol)
        if not _is_usable_rate(rate):
            raise RateUnavailable(f"Could not find exchange rate for {symbol} for {on}")

        return float(rate)


def _is_usable_rate(rate: object) -> bool:
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        return False
    return math.isfinite(rate) and rate > 0


class CurrencyConverter:
    """Converts native amounts into the reporting currency."""

    def __init__(
        self,
        provider: RateProvider,
        cache: RateCache | None = None,
        source_currency: str = "SEK",
        reporting_currency: str = "EUR",
    ):
        self.provider = provider
        self.cache = cache if cache is not None else RateCache()
        self.source_currency = source_currency
        self.reporting_currency = reporting_currency
        self._pending: dict[str, asyncio.Task] = {}

    @staticmethod
    def month_key(date_str: str) -> str:
        """First day of the month of a DD/MM/YYYY date, as YYYY-MM-DD."""
        try:
            parsed = datetime.strptime(date_str, "%d/%m/%Y").date()
        except ValueError as e:
            raise RateUnavailable(f"Cannot derive rate month from date '{date_str}'") from e
        return parsed.replace(day=1).isoformat()

    async def rate_for(self, date_str: str) -> float:
        """
        Rate for the month containing ``date_str``, fetched on cache miss.

        Concurrent misses for the same month share a single provider request.

        Raises:
            RateUnavailable: If the provider yields no usable rate
            NetworkError: On provider timeouts and transport failures
        """
        month = self.month_key(date_str)
        cached = self.cache.get(month)
        if cached is not None:
            return cached

        task = self._pending.get(month)
        if task is None:
            task = asyncio.ensure_future(self._fetch_rate(month))
            self._pending[month] = task
            task.add_done_callback(lambda done: self._forget_pending(month, done))
        return await task

    def _forget_pending(self, month: str, task: asyncio.Task) -> None:
        if self._pending.get(month) is task:
            del self._pending[month]

    async def _fetch_rate(self, month: str) -> float:
        logger.info(f"Fetching {self.source_currency} rate for date: {month}")
        try:
            rate = await self.provider.get_rate(month, self.reporting_currency, self.source_currency)
        except (RateUnavailable, NetworkError):
            raise
        except Exception as e:
            raise RateUnavailable(f"Failed to fetch exchange rate: {e}") from e

        if not _is_usable_rate(rate):
            raise RateUnavailable(f"Could not find exchange rate for {self.source_currency} for {month}")

        self.cache.set(month, float(rate))
        return float(rate)

    async def convert(self, amount: float, date_str: str) -> float:
        """Convert ``amount`` booked on ``date_str`` (DD/MM/YYYY), rounded to cents."""
        rate = await self.rate_for(date_str)
        return round_amount(amount / rate)

    async def check_provider(self, today: date | None = None) -> RateCheck:
        """Probe the provider with the current month's rate. Never raises."""
        today = today or date.today()
        try:
            rate = await self.rate_for(today.strftime("%d/%m/%Y"))
        except (RateUnavailable, NetworkError) as e:
            return RateCheck(success=False, error=str(e))

        return RateCheck(success=True, rate=rate, date=today.replace(day=1).isoformat())


async def convert_transactions(
    transactions: list[Transaction],
    converter: CurrencyConverter | None,
    institution: str,
) -> None:
    """
    Fill ``amount_eur`` for every transaction in place.

    A row whose rate cannot be obtained keeps its unconverted amount; the
    import carries on.
    """
    if converter is None:
        logger.warning(f"{institution}: no currency converter configured, keeping unconverted amounts")
        for transaction in transactions:
            transaction.amount_eur = transaction.amount
        return

    async def _convert_one(transaction: Transaction) -> None:
        try:
            transaction.amount_eur = await converter.convert(transaction.amount, transaction.date)
        except (RateUnavailable, NetworkError) as e:
            logger.warning(
                f"{institution}: error converting {converter.source_currency} to "
                f"{converter.reporting_currency} for {transaction.date}, using original amount: {e}"
            )
            transaction.amount_eur = transaction.amount

    await asyncio.gather(*(_convert_one(t) for t in transactions))
