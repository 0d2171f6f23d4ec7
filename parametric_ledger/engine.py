"""
engine.py - Insurance Engine Facade

Binds one weather insurance engine unit to a Ledger and exposes the engine's
operations as methods. Each mutating method computes a PendingTransaction
with the pure functions in units.weather_insurance and submits it with
Ledger.execute(), so every operation is atomic and recorded in the
transaction log.

Rejections surface as exceptions:
    - Precondition failures raise the InsuranceError computed by the unit
      functions (nothing is submitted)
    - Ledger rejections raise InsufficientFunds when a wallet cannot cover a
      move, LedgerError otherwise (nothing is applied)
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from .core import (
    PendingTransaction, ExecuteResult, ContractEvent,
    LedgerError, InsufficientFunds, InsuranceError, WalletNotRegistered,
)
from .ledger import Ledger
from .payoffs import PAYOFF_LONG
from .units.weather_insurance import (
    Position, ForecastState, LifecycleState,
    create_weather_insurance_unit, compute_deployment,
    compute_add_operator, compute_remove_operator,
    compute_set_minimum_premium, compute_forecast_update,
    compute_purchase, compute_funding, compute_payout, compute_destroy,
    get_premium, get_position, get_forecast, get_intrinsic_value,
    get_lifecycle_state, is_settled, list_participants, list_operators,
    engine_balance, is_timezone_aware,
)


class InsuranceEngine:
    """
    Stateful client for a weather insurance engine hosted in a Ledger.

    Example:
        ledger = Ledger("weather", datetime(2025, 6, 1))
        ledger.register_unit(cash("ETH", "Ether"))
        for wallet in ("insurer", "farmer"):
            ledger.register_wallet(wallet)

        engine = InsuranceEngine.deploy(
            ledger, "HEAT_NYC_JUL", owner="insurer", location="NYC",
            expiration_time=datetime(2025, 7, 31), condition=Decimal("70"),
            currency="ETH",
        )
        engine.update_forecast("insurer", datetime(2025, 6, 2), Decimal("68"), Decimal("10"))
        engine.buy_insurance("farmer", Decimal("100"), engine.get_premium(Decimal("100")))
    """

    def __init__(self, ledger: Ledger, symbol: str):
        """
        Attach to an engine unit already registered in the ledger.

        Raises:
            UnitNotRegistered: If no unit with this symbol exists
            WalletNotRegistered: If the engine's custody wallet is missing
        """
        ledger.get_unit(symbol)
        if not ledger.is_registered(symbol):
            raise WalletNotRegistered(f"custody wallet {symbol} not registered")
        self.ledger = ledger
        self.symbol = symbol
        self.verbose = ledger.verbose

    @classmethod
    def deploy(
        cls,
        ledger: Ledger,
        symbol: str,
        owner: str,
        location: str,
        expiration_time: datetime,
        condition: Decimal,
        currency: str,
        payoff: str = PAYOFF_LONG,
        operators: Iterable[str] = (),
        name: Optional[str] = None,
    ) -> InsuranceEngine:
        """
        Create an engine, register its custody wallet and record the deployment.

        The unit is registered through a logged transaction so that
        Ledger.replay() recreates it.

        Raises:
            ValueError: On invalid terms, an already registered symbol or an
                        expiration whose timezone awareness differs from the
                        ledger clock
            LedgerError: If the deployment transaction is rejected
        """
        if symbol in ledger.units:
            raise ValueError(f"Unit {symbol} already registered")
        ledger.get_unit(currency)
        if isinstance(expiration_time, datetime) and (
            is_timezone_aware(expiration_time) != is_timezone_aware(ledger.current_time)
        ):
            raise ValueError(
                f"expiration {expiration_time} and ledger time {ledger.current_time} "
                f"must both be timezone-aware or both naive"
            )
        unit = create_weather_insurance_unit(
            symbol=symbol,
            name=name or f"Weather insurance {location}",
            owner=owner,
            location=location,
            expiration_time=expiration_time,
            condition=condition,
            currency=currency,
            payoff=payoff,
            operators=operators,
        )
        if not ledger.is_registered(symbol):
            ledger.register_wallet(symbol)
        result = ledger.execute(compute_deployment(ledger, unit, owner))
        if result != ExecuteResult.APPLIED:
            raise LedgerError(f"deployment of {symbol} failed: {ledger.last_rejection}")
        return cls(ledger, symbol)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _submit(self, compute: Callable[..., PendingTransaction], *args) -> List[ContractEvent]:
        """Compute and execute one operation; return the events it emitted."""
        try:
            pending = compute(self.ledger, self.symbol, *args)
        except InsuranceError as e:
            if self.verbose:
                print(f"✗ {type(e).__name__}: {e}")
            raise

        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            reason = self.ledger.last_rejection or "rejected"
            if reason.startswith("insufficient funds"):
                raise InsufficientFunds(reason)
            raise LedgerError(reason)
        return list(pending.events)

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def add_operator(self, caller: str, operator: str) -> None:
        self._submit(compute_add_operator, caller, operator)

    def remove_operator(self, caller: str, operator: str) -> None:
        self._submit(compute_remove_operator, caller, operator)

    def set_minimum_premium(self, caller: str, amount: Decimal) -> None:
        self._submit(compute_set_minimum_premium, caller, amount)

    def update_forecast(self, caller: str, time: datetime, forecast: Decimal, risk: Decimal) -> None:
        self._submit(compute_forecast_update, caller, time, forecast, risk)

    def buy_insurance(self, buyer: str, notional: Decimal, payment: Decimal) -> List[ContractEvent]:
        """Purchase notional exposure; returns the emitted PurchaseEvent."""
        return self._submit(compute_purchase, buyer, notional, payment)

    def fund(self, caller: str, amount: Decimal) -> None:
        """Deposit owner collateral into the engine wallet."""
        self._submit(compute_funding, caller, amount)

    def pay_out(self, caller: str, participant: str) -> Decimal:
        """
        Settle one participant and return the amount disbursed.

        Returns Decimal("0") when the position is out of the money; the
        notional is cleared either way.
        """
        events = self._submit(compute_payout, caller, participant)
        return events[0].amount if events else Decimal("0")

    def pay_out_all(self, caller: str) -> Decimal:
        """Settle every participant with open notional, in participant order."""
        total = Decimal("0")
        for participant in self.list_participants():
            if self.get_position(participant).notional > 0:
                total += self.pay_out(caller, participant)
        return total

    def destroy(self, caller: str) -> Decimal:
        """Terminate the engine; returns the residual swept to the owner."""
        residual = self.balance()
        self._submit(compute_destroy, caller)
        return residual

    # ========================================================================
    # VIEWS
    # ========================================================================

    @property
    def state(self) -> dict:
        return self.ledger.get_unit_state(self.symbol)

    @property
    def currency(self) -> str:
        return self.state['currency']

    @property
    def owner(self) -> str:
        return self.state['owner']

    def get_premium(self, notional: Decimal) -> Decimal:
        return get_premium(self.ledger, self.symbol, notional)

    def get_intrinsic_value(self, notional: Decimal) -> Decimal:
        return get_intrinsic_value(self.ledger, self.symbol, notional)

    def get_position(self, participant: str) -> Position:
        return get_position(self.ledger, self.symbol, participant)

    def get_forecast(self) -> ForecastState:
        return get_forecast(self.ledger, self.symbol)

    def is_settled(self, caller: str) -> bool:
        return is_settled(self.ledger, self.symbol, caller)

    def get_lifecycle_state(self) -> LifecycleState:
        return get_lifecycle_state(self.ledger, self.symbol)

    def list_participants(self) -> List[str]:
        return list_participants(self.ledger, self.symbol)

    def list_operators(self) -> List[str]:
        return list_operators(self.ledger, self.symbol)

    def balance(self) -> Decimal:
        """Currency held in the engine's custody wallet."""
        return engine_balance(self.ledger, self.symbol)

    def events(self) -> List[ContractEvent]:
        """Events emitted by this engine, in execution order."""
        return self.ledger.events_for(self.symbol)

    def __repr__(self) -> str:
        return f"InsuranceEngine({self.symbol}, {self.get_lifecycle_state().value})"
