"""
Currency Ledger Accountant

Running balance, weighted-average cost (home currency per unit of foreign
currency) and realized exchange P&L of a foreign-currency cash ledger.

Transitions:
- EXCHANGE_BUY: adds balance and its home-currency cost
- EXCHANGE_SELL: realizes amount x (rate - average cost), removes cost
- SPEND: removes cost at the average without realizing a gain
- INTEREST: zero-cost addition
"""
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from loguru import logger

from investment_tracker.core.enums import CurrencyTransactionType
from investment_tracker.core.models import CurrencyTransaction
from investment_tracker.core.rounding import round_money, round_rate
from investment_tracker.utils.exceptions import (
    InsufficientLedgerBalanceError,
    InvalidTransactionError,
)


ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerState:
    """Ledger totals after a prefix of its history."""
    balance: Decimal = ZERO
    total_cost: Decimal = ZERO
    realized_pnl: Decimal = ZERO

    @property
    def average_cost(self) -> Optional[Decimal]:
        """Home cost per foreign unit; undefined at zero balance."""
        if self.balance <= 0:
            return None
        return round_rate(self.total_cost / self.balance)

    def to_dict(self) -> dict:
        avg = self.average_cost
        return {
            "balance": float(self.balance),
            "average_cost": float(avg) if avg is not None else None,
            "total_cost": float(round_money(self.total_cost)),
            "realized_pnl": float(round_money(self.realized_pnl)),
        }


def ordered_ledger_transactions(
    transactions: Iterable[CurrencyTransaction],
    as_of: Optional[date] = None,
) -> List[CurrencyTransaction]:
    active = [
        tx for tx in transactions
        if not tx.is_deleted and (as_of is None or tx.transaction_date <= as_of)
    ]
    return sorted(active, key=lambda tx: (tx.transaction_date, tx.created_at))


class CurrencyLedgerAccountant:
    """State machine over a chronological currency-transaction stream."""

    def apply(self, state: LedgerState, tx: CurrencyTransaction) -> LedgerState:
        """
        Apply one transaction.

        Raises:
            InsufficientLedgerBalanceError: If a sell or spend exceeds the balance
            InvalidTransactionError: If an exchange lacks its home amount or rate
        """
        amount = tx.foreign_amount
        tx_type = tx.transaction_type

        if tx_type == CurrencyTransactionType.EXCHANGE_BUY:
            if tx.home_amount is None or tx.exchange_rate is None:
                raise InvalidTransactionError("Exchange buy requires home amount and exchange rate")
            return self._settle(replace(
                state,
                balance=state.balance + amount,
                total_cost=state.total_cost + tx.home_amount,
            ))

        if tx_type == CurrencyTransactionType.INTEREST:
            return self._settle(replace(state, balance=state.balance + amount))

        # EXCHANGE_SELL and SPEND remove currency at the average cost
        if amount > state.balance:
            raise InsufficientLedgerBalanceError(
                f"Cannot remove {amount}; ledger balance is {state.balance}",
                details={
                    "transaction_id": str(tx.id),
                    "requested": str(amount),
                    "balance": str(state.balance),
                },
            )

        average = state.total_cost / state.balance
        removed_cost = average * amount
        realized = state.realized_pnl

        if tx_type == CurrencyTransactionType.EXCHANGE_SELL:
            if tx.exchange_rate is None:
                raise InvalidTransactionError("Exchange sell requires an exchange rate")
            realized += amount * (tx.exchange_rate - average)

        return self._settle(LedgerState(
            balance=state.balance - amount,
            total_cost=state.total_cost - removed_cost,
            realized_pnl=realized,
        ))

    @staticmethod
    def _settle(state: LedgerState) -> LedgerState:
        # Cost restarts from zero whenever the balance is exhausted
        if state.balance == 0 and state.total_cost != 0:
            return replace(state, total_cost=ZERO)
        return state

    def replay(
        self,
        transactions: Iterable[CurrencyTransaction],
        as_of: Optional[date] = None,
    ) -> LedgerState:
        """Fold the ledger's history up to as_of."""
        state = LedgerState()
        for tx in ordered_ledger_transactions(transactions, as_of):
            state = self.apply(state, tx)
        return state

    def calculate_balance(
        self,
        transactions: Iterable[CurrencyTransaction],
        as_of: Optional[date] = None,
    ) -> Decimal:
        return self.replay(transactions, as_of).balance

    def calculate_average_cost(
        self,
        transactions: Iterable[CurrencyTransaction],
        as_of: Optional[date] = None,
    ) -> Optional[Decimal]:
        return self.replay(transactions, as_of).average_cost

    def calculate_realized_pnl(
        self,
        transactions: Iterable[CurrencyTransaction],
        as_of: Optional[date] = None,
    ) -> Decimal:
        return round_money(self.replay(transactions, as_of).realized_pnl)

    def can_withdraw(
        self,
        transactions: Iterable[CurrencyTransaction],
        amount: Decimal,
        as_of: Optional[date] = None,
    ) -> bool:
        balance = self.calculate_balance(transactions, as_of)
        if amount > balance:
            logger.debug(f"Withdrawal of {amount} exceeds ledger balance {balance}")
            return False
        return True
