"""
Investment Tracker - Custom Exceptions
Engine-specific exceptions carrying a stable error code.
"""
from typing import Optional, Any, Dict


class InvestmentTrackerException(Exception):
    """Base exception for the investment tracker engine."""

    def __init__(
        self,
        message: str = "An error occurred",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for presentation layers."""
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# =========================
# Validation Exceptions
# =========================

class ValidationError(InvestmentTrackerException):
    """Input rejected at a boundary."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="VALIDATION_ERROR", details=details)


class InvalidTransactionError(ValidationError):
    """Transaction fields violate their invariants."""

    def __init__(self, message: str = "Invalid transaction", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)
        self.code = "INVALID_TRANSACTION"


class EntityNotFoundError(InvestmentTrackerException):
    """A repository lookup by identifier found nothing."""

    def __init__(self, entity: str = "Entity", identifier: Any = None):
        message = f"{entity} '{identifier}' not found" if identifier is not None else f"{entity} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"entity": entity, "id": str(identifier) if identifier is not None else None},
        )


# =========================
# Trading Exceptions
# =========================

class TradingError(InvestmentTrackerException):
    """Trading related errors."""
    pass


class InsufficientSharesError(TradingError):
    """Insufficient shares to sell."""

    def __init__(self, message: str = "Insufficient shares", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INSUFFICIENT_SHARES", details=details)


# =========================
# Currency Ledger Exceptions
# =========================

class LedgerError(InvestmentTrackerException):
    """Currency ledger related errors."""
    pass


class InsufficientLedgerBalanceError(LedgerError):
    """Removal exceeds the ledger's foreign-currency balance."""

    def __init__(self, message: str = "Insufficient ledger balance", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INSUFFICIENT_LEDGER_BALANCE", details=details)


# =========================
# Market Data Exceptions
# =========================

class MarketDataError(InvestmentTrackerException):
    """Market data related errors."""

    def __init__(self, message: str = "Market data error", code: Optional[str] = "MARKET_DATA_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=code, details=details)


class RateLimitExceededError(MarketDataError):
    """Upstream provider is rate limiting; the caller should back off."""

    def __init__(self, key: str = "", retry_after: Optional[float] = None):
        message = f"Rate limit exceeded while fetching {key}" if key else "Rate limit exceeded"
        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            details={"key": key, "retry_after": retry_after},
        )
        self.key = key
        self.retry_after = retry_after


# =========================
# Cache Exceptions
# =========================

class CacheEntryExistsError(InvestmentTrackerException):
    """A historical cache entry already exists for (kind, key, date)."""

    def __init__(self, key: str = "", requested_date: Any = None):
        super().__init__(
            message=f"Cache entry already exists for {key} on {requested_date}",
            code="CACHE_ENTRY_EXISTS",
            details={"key": key, "date": str(requested_date) if requested_date else None},
        )
