"""
Market prices: USD/COP (TRM), crypto (CoinGecko) and fiat rates.

Free public APIs without keys. Responses are cached for five minutes to
stay under their rate limits.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from app.whatsapp_bot.logging_config import get_logger

logger = get_logger("briefing.prices")

CACHE_TTL = 5 * 60
ER_API_URL = "https://open.er-api.com/v6/latest/USD"
COINGECKO_URL = "https://api.coingecko.com/api/v3/coins/{coin_id}"

COIN_ALIASES = {
    "btc": "bitcoin", "bitcoin": "bitcoin",
    "eth": "ethereum", "ethereum": "ethereum",
    "sol": "solana", "solana": "solana",
    "bnb": "binancecoin",
    "xrp": "ripple", "ripple": "ripple",
    "ada": "cardano", "cardano": "cardano",
    "doge": "dogecoin", "dogecoin": "dogecoin",
    "dot": "polkadot", "polkadot": "polkadot",
    "matic": "matic-network", "polygon": "matic-network",
    "avax": "avalanche-2", "avalanche": "avalanche-2",
    "link": "chainlink", "chainlink": "chainlink",
    "uni": "uniswap", "uniswap": "uniswap",
    "atom": "cosmos", "cosmos": "cosmos",
    "ltc": "litecoin", "litecoin": "litecoin",
    "near": "near", "ton": "the-open-network",
    "shib": "shiba-inu",
    "pepe": "pepe",
    "sui": "sui",
}

CRYPTO_EMOJI = {"BTC": "₿", "ETH": "Ξ", "SOL": "◎", "DOGE": "🐕"}

FX_NAME = {
    "EUR": "Euro", "GBP": "Libra", "JPY": "Yen", "MXN": "Peso MX", "BRL": "Real",
    "ARS": "Peso AR", "PEN": "Sol", "CLP": "Peso CL", "VES": "Bolívar", "CNY": "Yuan",
    "CAD": "Dólar CA", "CHF": "Franco", "AUD": "Dólar AU",
}


class PriceError(Exception):
    """A price feed failed or returned no usable data."""
    pass


@dataclass
class CryptoPrice:
    name: str
    symbol: str
    price_usd: float
    change_24h: float
    price_cop: Optional[float] = None


@dataclass
class FxRate:
    currency: str
    rate_vs_usd: float
    price_cop: float


def normalize_coin_id(value: str) -> str:
    lower = value.lower().strip()
    return COIN_ALIASES.get(lower, lower)


def format_usd(amount: float) -> str:
    if amount >= 1_000_000_000:
        return f"${amount / 1_000_000_000:.2f}B"
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.2f}M"
    if amount >= 1000:
        return f"${amount:,.2f}"
    if amount >= 1:
        return f"${amount:.2f}"
    if amount >= 0.01:
        return f"${amount:.4f}"
    return f"${amount:.8f}"


def format_change_arrow(pct: float) -> str:
    if pct > 0:
        return f"+{pct:.2f}% ↑"
    if pct < 0:
        return f"{pct:.2f}% ↓"
    return "0.00%"


class PriceService:
    """Price lookups with a small in-process TTL cache."""

    def __init__(self, ttl: float = CACHE_TTL, timeout: float = 10.0):
        self.ttl = ttl
        self.timeout = timeout
        self._cache: Dict[str, tuple[float, Any]] = {}

    def _cached(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry and time.monotonic() - entry[0] < self.ttl:
            return entry[1]
        return None

    def _store(self, key: str, value: Any) -> Any:
        self._cache[key] = (time.monotonic(), value)
        return value

    async def _get_json(self, url: str, params: Optional[dict] = None) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, params=params)
            if response.status_code == 429:
                raise PriceError("Límite de consultas alcanzado. Intenta en unos segundos.")
            response.raise_for_status()
            return response.json()

    async def _usd_rates(self) -> Dict[str, float]:
        cached = self._cached("usd_rates")
        if cached:
            return cached
        data = await self._get_json(ER_API_URL)
        if data.get("result") != "success" or not data.get("rates"):
            raise PriceError("Respuesta sin tasas de cambio")
        return self._store("usd_rates", data["rates"])

    async def get_trm(self) -> float:
        """USD -> COP rate."""
        rates = await self._usd_rates()
        if "COP" not in rates:
            raise PriceError("No COP rate in response")
        return float(rates["COP"])

    async def get_crypto_price(self, coin: str) -> CryptoPrice:
        coin_id = normalize_coin_id(coin)
        key = f"crypto_{coin_id}"
        cached = self._cached(key)
        if cached:
            return cached

        data = await self._get_json(
            COINGECKO_URL.format(coin_id=coin_id),
            params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "false",
            },
        )
        market = data.get("market_data") or {}
        price = CryptoPrice(
            name=data.get("name", coin_id),
            symbol=(data.get("symbol") or coin_id).upper(),
            price_usd=float((market.get("current_price") or {}).get("usd") or 0),
            change_24h=float(market.get("price_change_percentage_24h") or 0),
            price_cop=(market.get("current_price") or {}).get("cop"),
        )
        return self._store(key, price)

    async def get_fx_rates(self, currencies: List[str]) -> List[FxRate]:
        """Fiat currencies priced in COP (via USD cross rates)."""
        if not currencies:
            return []
        rates = await self._usd_rates()
        cop = rates.get("COP")
        if not cop:
            return []
        result = []
        for currency in currencies:
            rate = rates.get(currency.upper())
            if rate:
                result.append(FxRate(currency=currency.upper(), rate_vs_usd=rate, price_cop=cop / rate))
        return result

    async def format_prices(self, prefs: dict) -> str:
        """Prices section honoring the user's cryptos / fx / TRM preferences."""
        from app.gastos.parsing import format_cop

        lines = ["💰 *Precios actuales*", ""]

        if prefs.get("show_trm", True):
            try:
                lines.append(f"💵 *Dólar TRM:* {format_cop(await self.get_trm())} COP")
            except (httpx.HTTPError, PriceError) as e:
                logger.warning(f"TRM unavailable: {e}")

        for coin in prefs.get("cryptos") or ["BTC"]:
            try:
                price = await self.get_crypto_price(coin)
            except (httpx.HTTPError, PriceError) as e:
                logger.warning(f"Crypto price unavailable for {coin}: {e}")
                continue
            emoji = CRYPTO_EMOJI.get(price.symbol, "🪙")
            lines.append(f"{emoji} *{price.symbol}:* {format_usd(price.price_usd)} ({format_change_arrow(price.change_24h)})")

        fx = prefs.get("fx_currencies") or []
        if fx:
            try:
                rates = await self.get_fx_rates(fx)
            except (httpx.HTTPError, PriceError) as e:
                logger.warning(f"FX rates unavailable: {e}")
                rates = []
            if rates:
                lines += ["", "💱 *Divisas*"]
                for rate in rates:
                    lines.append(f"*{FX_NAME.get(rate.currency, rate.currency)}:* {format_cop(rate.price_cop)} COP")

        if len(lines) == 2:
            return "No se pudieron obtener precios en este momento."
        return "\n".join(lines)
