"""
Domain Value Objects

Immutable records consumed by the calculators and services. Every record is
built through a validating factory so invariants hold from construction on;
the persistence layer maps its rows onto these types.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from investment_tracker.core.enums import (
    CacheKind,
    CurrencyTransactionType,
    Market,
    TransactionType,
    currency_for_market,
    guess_market,
)
from investment_tracker.core.rounding import (
    round_money,
    round_price,
    round_rate,
    round_shares,
    round_valuation,
    subtotal_policy_for,
    to_decimal,
)
from investment_tracker.utils.exceptions import InvalidTransactionError, ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# Exchange Rates
# =========================

class ExchangeRate(ABC):
    """A transaction's exchange rate to the home currency: known or unknown."""

    is_known: bool = False

    @abstractmethod
    def convert(self, amount: Decimal) -> Optional[Decimal]:
        """Amount in home currency, or None when the rate is unknown."""

    @property
    @abstractmethod
    def value(self) -> Optional[Decimal]:
        pass

    @staticmethod
    def of(value) -> "ExchangeRate":
        """Build from an optional raw value."""
        if value is None:
            return UNKNOWN_RATE
        return KnownRate(to_decimal(value))


@dataclass(frozen=True)
class KnownRate(ExchangeRate):
    rate: Decimal

    is_known = True

    def __post_init__(self):
        rate = to_decimal(self.rate)
        if rate <= 0:
            raise ValidationError(f"Exchange rate must be positive, got {rate}")
        object.__setattr__(self, "rate", round_rate(rate))

    def convert(self, amount: Decimal) -> Decimal:
        return amount * self.rate

    @property
    def value(self) -> Decimal:
        return self.rate


@dataclass(frozen=True)
class UnknownRate(ExchangeRate):

    def convert(self, amount: Decimal) -> None:
        return None

    @property
    def value(self) -> None:
        return None


UNKNOWN_RATE = UnknownRate()


# =========================
# Stock Transactions
# =========================

@dataclass(frozen=True)
class StockTransaction:
    """A buy or sell of a listed security."""
    id: UUID
    portfolio_id: UUID
    transaction_date: date
    symbol: str
    market: Market
    transaction_type: TransactionType
    quantity: Decimal
    unit_price: Decimal
    fees: Decimal
    exchange_rate: ExchangeRate
    currency: str
    created_at: datetime
    currency_ledger_id: Optional[UUID] = None
    notes: Optional[str] = None
    is_deleted: bool = False

    @classmethod
    def create(
        cls,
        portfolio_id: UUID,
        transaction_date: date,
        symbol: str,
        transaction_type: TransactionType,
        quantity,
        unit_price,
        fees=Decimal("0"),
        exchange_rate=None,
        market: Optional[Market] = None,
        currency: Optional[str] = None,
        currency_ledger_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        is_deleted: bool = False,
    ) -> "StockTransaction":
        """
        Validate and build a transaction.

        Raises:
            InvalidTransactionError: If any field violates its invariant
        """
        if not symbol or not symbol.strip():
            raise InvalidTransactionError("Symbol is required")
        symbol = symbol.strip().upper()

        quantity = to_decimal(quantity)
        unit_price = to_decimal(unit_price)
        fees = to_decimal(fees)

        if quantity <= 0:
            raise InvalidTransactionError(
                "Quantity must be positive",
                details={"symbol": symbol, "quantity": str(quantity)},
            )
        if unit_price < 0:
            raise InvalidTransactionError(
                "Price cannot be negative",
                details={"symbol": symbol, "unit_price": str(unit_price)},
            )
        if fees < 0:
            raise InvalidTransactionError(
                "Fees cannot be negative",
                details={"symbol": symbol, "fees": str(fees)},
            )
        if transaction_date > date.today() + timedelta(days=1):
            raise InvalidTransactionError(
                "Transaction date cannot be in the future",
                details={"transaction_date": transaction_date.isoformat()},
            )

        if not isinstance(exchange_rate, ExchangeRate):
            try:
                exchange_rate = ExchangeRate.of(exchange_rate)
            except ValidationError as e:
                raise InvalidTransactionError(e.message, details={"symbol": symbol}) from e

        market = market or guess_market(symbol)
        currency = (currency or currency_for_market(market)).upper()

        return cls(
            id=id or uuid4(),
            portfolio_id=portfolio_id,
            transaction_date=transaction_date,
            symbol=symbol,
            market=market,
            transaction_type=transaction_type,
            quantity=round_shares(quantity),
            unit_price=round_price(unit_price),
            fees=round_money(fees),
            exchange_rate=exchange_rate,
            currency=currency,
            created_at=created_at or _utcnow(),
            currency_ledger_id=currency_ledger_id,
            notes=notes,
            is_deleted=is_deleted,
        )

    @property
    def is_buy(self) -> bool:
        return self.transaction_type == TransactionType.BUY

    @property
    def is_sell(self) -> bool:
        return self.transaction_type == TransactionType.SELL

    @property
    def subtotal_source(self) -> Decimal:
        """quantity x price under the market's rounding policy."""
        return subtotal_policy_for(self.market).apply(self.quantity * self.unit_price)

    @property
    def total_cost_source(self) -> Decimal:
        return self.subtotal_source + self.fees

    @property
    def net_proceeds_source(self) -> Decimal:
        return self.subtotal_source - self.fees

    @property
    def total_cost_home(self) -> Optional[Decimal]:
        return self.exchange_rate.convert(self.total_cost_source)

    def mark_deleted(self) -> "StockTransaction":
        return replace(self, is_deleted=True)

    def with_exchange_rate(self, rate) -> "StockTransaction":
        return replace(self, exchange_rate=ExchangeRate.of(rate))


# =========================
# Stock Splits
# =========================

@dataclass(frozen=True)
class StockSplit:
    """A corporate split; ratio 4 means one old share became four."""
    id: UUID
    symbol: str
    market: Market
    effective_date: date
    ratio: Decimal
    description: Optional[str] = None

    @classmethod
    def create(
        cls,
        symbol: str,
        market: Market,
        effective_date: date,
        ratio,
        description: Optional[str] = None,
        id: Optional[UUID] = None,
    ) -> "StockSplit":
        ratio = to_decimal(ratio)
        if ratio <= 0:
            raise ValidationError(
                "Split ratio must be positive",
                details={"symbol": symbol, "ratio": str(ratio)},
            )
        if not symbol or not symbol.strip():
            raise ValidationError("Symbol is required")
        return cls(
            id=id or uuid4(),
            symbol=symbol.strip().upper(),
            market=market,
            effective_date=effective_date,
            ratio=ratio,
            description=description,
        )


# =========================
# Portfolios
# =========================

@dataclass(frozen=True)
class Portfolio:
    """A portfolio; positions are derived from its transactions."""
    id: UUID
    user_id: UUID
    base_currency: str
    home_currency: str
    bound_currency_ledger_id: Optional[UUID] = None
    description: Optional[str] = None

    @classmethod
    def create(
        cls,
        user_id: UUID,
        base_currency: str = "USD",
        home_currency: str = "TWD",
        bound_currency_ledger_id: Optional[UUID] = None,
        description: Optional[str] = None,
        id: Optional[UUID] = None,
    ) -> "Portfolio":
        for code in (base_currency, home_currency):
            if not code or len(code.strip()) != 3:
                raise ValidationError(f"Invalid currency code: {code!r}")
        return cls(
            id=id or uuid4(),
            user_id=user_id,
            base_currency=base_currency.strip().upper(),
            home_currency=home_currency.strip().upper(),
            bound_currency_ledger_id=bound_currency_ledger_id,
            description=description,
        )


# =========================
# Currency Ledgers
# =========================

@dataclass(frozen=True)
class CurrencyLedger:
    """A foreign-currency cash account."""
    id: UUID
    user_id: UUID
    currency_code: str
    home_currency: str
    name: str
    is_active: bool = True

    @classmethod
    def create(
        cls,
        user_id: UUID,
        currency_code: str,
        name: str,
        home_currency: str = "TWD",
        is_active: bool = True,
        id: Optional[UUID] = None,
    ) -> "CurrencyLedger":
        if not currency_code or len(currency_code.strip()) != 3:
            raise ValidationError(f"Invalid currency code: {currency_code!r}")
        if not name or not name.strip():
            raise ValidationError("Ledger name is required")
        return cls(
            id=id or uuid4(),
            user_id=user_id,
            currency_code=currency_code.strip().upper(),
            home_currency=home_currency.strip().upper(),
            name=name.strip(),
            is_active=is_active,
        )


@dataclass(frozen=True)
class CurrencyTransaction:
    """A movement of foreign currency in or out of a ledger."""
    id: UUID
    ledger_id: UUID
    transaction_date: date
    transaction_type: CurrencyTransactionType
    foreign_amount: Decimal
    created_at: datetime
    home_amount: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    related_stock_transaction_id: Optional[UUID] = None
    notes: Optional[str] = None
    is_deleted: bool = False

    @classmethod
    def create(
        cls,
        ledger_id: UUID,
        transaction_date: date,
        transaction_type: CurrencyTransactionType,
        foreign_amount,
        home_amount=None,
        exchange_rate=None,
        related_stock_transaction_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        is_deleted: bool = False,
    ) -> "CurrencyTransaction":
        """
        Validate and build a ledger transaction.

        Exchange buys and sells must carry both the home amount and the rate.

        Raises:
            InvalidTransactionError: If any field violates its invariant
        """
        foreign_amount = to_decimal(foreign_amount)
        if foreign_amount <= 0:
            raise InvalidTransactionError(
                "Foreign amount must be positive",
                details={"foreign_amount": str(foreign_amount)},
            )

        if home_amount is not None:
            home_amount = to_decimal(home_amount)
            if home_amount < 0:
                raise InvalidTransactionError("Home amount cannot be negative")
            home_amount = round_money(home_amount)

        if exchange_rate is not None:
            exchange_rate = to_decimal(exchange_rate)
            if exchange_rate <= 0:
                raise InvalidTransactionError("Exchange rate must be positive")
            exchange_rate = round_rate(exchange_rate)

        if transaction_type in (CurrencyTransactionType.EXCHANGE_BUY, CurrencyTransactionType.EXCHANGE_SELL):
            if home_amount is None or exchange_rate is None:
                raise InvalidTransactionError(
                    f"{transaction_type.value} requires both home amount and exchange rate",
                    details={"transaction_type": transaction_type.value},
                )

        return cls(
            id=id or uuid4(),
            ledger_id=ledger_id,
            transaction_date=transaction_date,
            transaction_type=transaction_type,
            foreign_amount=round_shares(foreign_amount),
            created_at=created_at or _utcnow(),
            home_amount=home_amount,
            exchange_rate=exchange_rate,
            related_stock_transaction_id=related_stock_transaction_id,
            notes=notes,
            is_deleted=is_deleted,
        )


@dataclass(frozen=True)
class LedgerWithTransactions:
    """A ledger together with its ordered transaction history."""
    ledger: CurrencyLedger
    transactions: list


# =========================
# Snapshots
# =========================

@dataclass(frozen=True)
class TransactionPortfolioSnapshot:
    """Portfolio value immediately before and after a transaction."""
    id: UUID
    portfolio_id: UUID
    transaction_id: UUID
    snapshot_date: date
    value_before_home: Decimal
    value_after_home: Decimal
    value_before_source: Decimal
    value_after_source: Decimal
    created_at: datetime

    @classmethod
    def create(
        cls,
        portfolio_id: UUID,
        transaction_id: UUID,
        snapshot_date: date,
        value_before_home,
        value_after_home,
        value_before_source,
        value_after_source,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
    ) -> "TransactionPortfolioSnapshot":
        return cls(
            id=id or uuid4(),
            portfolio_id=portfolio_id,
            transaction_id=transaction_id,
            snapshot_date=snapshot_date,
            value_before_home=round_valuation(value_before_home),
            value_after_home=round_valuation(value_after_home),
            value_before_source=round_valuation(value_before_source),
            value_after_source=round_valuation(value_after_source),
            created_at=created_at or _utcnow(),
        )


# =========================
# Historical Market Data
# =========================

@dataclass(frozen=True)
class HistoricalCacheEntry:
    """
    A persisted historical price or FX rate.

    Entries are write-once. ``is_unavailable`` marks a confirmed absence and
    carries no value.
    """
    kind: CacheKind
    cache_key: str
    requested_date: date
    source: str
    fetched_at: datetime
    value: Optional[Decimal] = None
    actual_date: Optional[date] = None
    currency: Optional[str] = None
    is_unavailable: bool = False

    @classmethod
    def available(
        cls,
        kind: CacheKind,
        cache_key: str,
        requested_date: date,
        value,
        source: str,
        actual_date: Optional[date] = None,
        currency: Optional[str] = None,
        fetched_at: Optional[datetime] = None,
    ) -> "HistoricalCacheEntry":
        value = to_decimal(value)
        if value <= 0:
            raise ValidationError(
                f"Cached value must be positive for {cache_key}",
                details={"value": str(value)},
            )
        return cls(
            kind=kind,
            cache_key=cache_key,
            requested_date=requested_date,
            source=source,
            fetched_at=fetched_at or _utcnow(),
            value=value,
            actual_date=actual_date or requested_date,
            currency=currency,
            is_unavailable=False,
        )

    @classmethod
    def unavailable(
        cls,
        kind: CacheKind,
        cache_key: str,
        requested_date: date,
        source: str,
        fetched_at: Optional[datetime] = None,
    ) -> "HistoricalCacheEntry":
        return cls(
            kind=kind,
            cache_key=cache_key,
            requested_date=requested_date,
            source=source,
            fetched_at=fetched_at or _utcnow(),
            is_unavailable=True,
        )
