"""
Domain enumerations shared by the calculators, cache and persistence layers.
"""
from enum import Enum


class Market(str, Enum):
    """Exchange a stock is listed on."""
    TW = "tw"
    US = "us"
    UK = "uk"
    EU = "eu"


class TransactionType(str, Enum):
    """Stock transaction types."""
    BUY = "buy"
    SELL = "sell"


class CurrencyTransactionType(str, Enum):
    """Currency ledger transaction types."""
    EXCHANGE_BUY = "exchange_buy"
    EXCHANGE_SELL = "exchange_sell"
    INTEREST = "interest"
    SPEND = "spend"


class CacheKind(str, Enum):
    """Kinds of historical market data kept in the cache."""
    PRICE = "price"
    FX = "fx"


MARKET_CURRENCIES = {
    Market.TW: "TWD",
}
DEFAULT_MARKET_CURRENCY = "USD"


def guess_market(symbol: str) -> Market:
    """
    Guess the listing market from a ticker.

    Taiwan tickers start with a digit, London tickers carry a ``.L`` suffix,
    everything else is treated as US.
    """
    symbol = symbol.strip().upper()
    if symbol and symbol[0].isdigit():
        return Market.TW
    if symbol.endswith(".L"):
        return Market.UK
    return Market.US


def currency_for_market(market: Market) -> str:
    """Trading currency of a market."""
    return MARKET_CURRENCIES.get(market, DEFAULT_MARKET_CURRENCY)
