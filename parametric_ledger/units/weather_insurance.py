"""
weather_insurance.py - Parametric Weather Insurance Engine

A weather insurance engine is a unit whose state holds the contract terms,
the latest forecast, the minimum premium and every participant's position.
Its custody wallet has the same id as the unit symbol: premiums flow in,
payouts and the final sweep flow out.

Lifecycle:
    created           - terms fixed, no forecast recorded yet
    active            - forecast recorded, valuation time <= expiration
    expired_unvalued  - ledger clock past expiration, no later valuation pushed
    valuation_reached - valuation time >= expiration, payouts enabled
    settled           - valuation reached and every notional is zero
    terminated        - funds swept to the owner, storage released (terminal)

Every mutating function takes a LedgerView (read-only), checks its
preconditions, and returns a PendingTransaction with the state change, the
currency moves and the contract events. Precondition failures raise a named
InsuranceError before anything is built. Each transaction bumps the
engine's 'sequence', so no two operations share an intent_id.

Amounts (notional, payment, premium, payout) are whole base units of the
engine currency. Fractional intermediate results truncate toward zero.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Iterable, List, Optional
import copy

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange, UnitState,
    TransactionOrigin, OriginType,
    PurchaseEvent, PayoutEvent,
    TransferRuleViolation,
    InvalidAmount, PremiumTooLow, ContractNotActive, ContractExpired,
    ContractStillActive, PositionsNotSettled, ContractTerminated,
    UNIT_TYPE_WEATHER_INSURANCE, PERCENT,
    build_transaction, _freeze_state,
)
from ..access import require_owner, require_owner_or_operator
from ..payoffs import PAYOFF_LONG, get_payoff


_ZERO = Decimal("0")


class LifecycleState(Enum):
    CREATED = "created"
    ACTIVE = "active"
    EXPIRED_UNVALUED = "expired_unvalued"
    VALUATION_REACHED = "valuation_reached"
    SETTLED = "settled"
    TERMINATED = "terminated"


@dataclass(frozen=True, slots=True)
class Position:
    """A participant's exposure and the premium it has paid so far."""
    notional: Decimal
    premium_paid: Decimal


@dataclass(frozen=True, slots=True)
class ForecastState:
    """The latest observation pushed by the owner or an operator."""
    valuation_time: Optional[datetime]
    forecast: Decimal
    forecast_risk: Decimal


# ============================================================================
# HELPERS
# ============================================================================

def _whole_amount(value, name: str, allow_zero: bool = False) -> Decimal:
    value = Decimal(str(value)) if not isinstance(value, Decimal) else value
    if not value.is_finite() or value < _ZERO or (value == _ZERO and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise InvalidAmount(f"{name} must be {qualifier}, got {value}")
    if value != value.to_integral_value():
        raise InvalidAmount(f"{name} must be a whole number of base units, got {value}")
    return value


def is_timezone_aware(moment: datetime) -> bool:
    return moment.tzinfo is not None and moment.utcoffset() is not None


def _truncate(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_DOWN)


def _require_live(state: UnitState, symbol: str) -> None:
    if state['terminated']:
        raise ContractTerminated(f"{symbol} has been destroyed")


def _require_valuation_reached(state: UnitState, symbol: str, action: str) -> None:
    valuation_time = state['valuation_time']
    if valuation_time is None or valuation_time < state['expiration_time']:
        raise ContractStillActive(
            f"{symbol}: {action} needs valuation time {valuation_time} "
            f">= expiration {state['expiration_time']}"
        )


def _intrinsic_value(state: UnitState, notional: Decimal) -> Decimal:
    payoff = get_payoff(state['payoff'])
    return _truncate(payoff(notional, state['forecast'], state['condition']))


def _premium(state: UnitState, notional: Decimal) -> Decimal:
    risk_loading = _truncate(notional * state['forecast_risk'] / PERCENT)
    return _intrinsic_value(state, notional) + risk_loading + state['minimum_premium']


def _all_settled(state: UnitState) -> bool:
    positions = state['positions']
    return all(
        positions.get(participant, {}).get('notional', _ZERO) == _ZERO
        for participant in state['participants']
    )


def _commit(
    view: LedgerView,
    symbol: str,
    old_state: UnitState,
    new_state: UnitState,
    caller: str,
    event_type: str,
    origin_type: OriginType = OriginType.CONTRACT,
    moves: Optional[List[Move]] = None,
    events: Optional[list] = None,
) -> PendingTransaction:
    new_state['sequence'] = old_state['sequence'] + 1
    return build_transaction(
        view,
        moves or [],
        [UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)],
        origin=TransactionOrigin(origin_type, caller, symbol, event_type),
        events=events,
    )


def insurance_transfer_rule(view: LedgerView, move: Move) -> None:
    """Engine units never change hands; exposure lives in contract state."""
    raise TransferRuleViolation(
        f"{move.unit_symbol}: insurance positions are held in contract state and cannot be transferred"
    )


# ============================================================================
# CREATION
# ============================================================================

def create_weather_insurance_unit(
    symbol: str,
    name: str,
    owner: str,
    location: str,
    expiration_time: datetime,
    condition: Decimal,
    currency: str,
    payoff: str = PAYOFF_LONG,
    operators: Iterable[str] = (),
) -> Unit:
    """
    Create a weather insurance engine unit with its terms fixed.

    Args:
        symbol: Engine identifier; also the id of its custody wallet
        name: Human-readable name
        owner: Identifier holding configuration rights and fund custody
        location: Where the weather condition is observed
        expiration_time: UTC time at which the contract expires
        condition: Strike, a signed weather value (e.g. Decimal("70.5"))
        currency: Ledger unit used for premiums and payouts
        payoff: Name of a registered intrinsic value function
        operators: Initial operator set (must not contain the owner)

    Returns:
        Unit of type WEATHER_INSURANCE with a non-transferable rule.

    Raises:
        ValueError: On empty identifiers, a non-datetime expiration, a
                    non-finite condition, an unknown payoff or an owner
                    listed as operator
    """
    condition = Decimal(str(condition)) if not isinstance(condition, Decimal) else condition

    if not owner or not owner.strip():
        raise ValueError("owner cannot be empty")
    if not currency or not currency.strip():
        raise ValueError("currency cannot be empty")
    if owner == symbol:
        raise ValueError("owner must differ from the engine symbol")
    if not isinstance(expiration_time, datetime):
        raise ValueError(f"expiration_time must be a datetime, got {type(expiration_time)}")
    if not condition.is_finite():
        raise ValueError(f"condition must be finite, got {condition}")
    get_payoff(payoff)

    operator_set = set(operators)
    if owner in operator_set:
        raise ValueError("owner is implicitly privileged and cannot be an operator")

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_WEATHER_INSURANCE,
        min_balance=_ZERO,
        max_balance=_ZERO,
        decimal_places=0,
        transfer_rule=insurance_transfer_rule,
        _frozen_state=_freeze_state({
            'owner': owner,
            'operators': operator_set,
            'location': location,
            'expiration_time': expiration_time,
            'condition': condition,
            'currency': currency,
            'payoff': payoff,
            'valuation_time': None,
            'forecast': _ZERO,
            'forecast_risk': _ZERO,
            'minimum_premium': _ZERO,
            'positions': {},
            'participants': [],
            'terminated': False,
            'sequence': 0,
        })
    )


def compute_deployment(view: LedgerView, unit: Unit, deployer: str) -> PendingTransaction:
    """Register an engine unit through the transaction log so replay can recreate it."""
    origin = TransactionOrigin(OriginType.SYSTEM, deployer, unit.symbol, "DEPLOY")
    return build_transaction(view, [], origin=origin, units_to_create=(unit,))


# ============================================================================
# ACCESS CONTROL
# ============================================================================

def compute_add_operator(
    view: LedgerView,
    symbol: str,
    caller: str,
    operator: str,
) -> PendingTransaction:
    """Owner grants the operator role."""
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner(state, caller, "add_operator")
    if not operator or not operator.strip():
        raise ValueError("operator cannot be empty")
    if operator == state['owner']:
        raise ValueError("owner is implicitly privileged and cannot be an operator")

    new_state = copy.deepcopy(state)
    new_state['operators'].add(operator)
    return _commit(view, symbol, state, new_state, caller, "ADD_OPERATOR")


def compute_remove_operator(
    view: LedgerView,
    symbol: str,
    caller: str,
    operator: str,
) -> PendingTransaction:
    """Owner revokes the operator role. Removing a non-operator is a no-op."""
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner(state, caller, "remove_operator")

    new_state = copy.deepcopy(state)
    new_state['operators'].discard(operator)
    return _commit(view, symbol, state, new_state, caller, "REMOVE_OPERATOR")


# ============================================================================
# CONFIGURATION AND FORECAST
# ============================================================================

def compute_set_minimum_premium(
    view: LedgerView,
    symbol: str,
    caller: str,
    amount: Decimal,
) -> PendingTransaction:
    """Owner sets the premium floor; it must be a positive whole amount."""
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner(state, caller, "set_minimum_premium")
    amount = _whole_amount(amount, "minimum premium")

    new_state = copy.deepcopy(state)
    new_state['minimum_premium'] = amount
    return _commit(view, symbol, state, new_state, caller, "SET_MINIMUM_PREMIUM")


def compute_forecast_update(
    view: LedgerView,
    symbol: str,
    caller: str,
    time: datetime,
    forecast: Decimal,
    risk: Decimal,
) -> PendingTransaction:
    """
    Overwrite (valuation_time, forecast, forecast_risk) as one unit.

    The time is taken as given: it may move backwards or run ahead of the
    ledger clock. Pushing a time at or past expiration enables payouts.

    Raises:
        Unauthorized: caller is neither owner nor operator
        ValueError: time is not a datetime, its timezone awareness differs
                    from the expiration, or forecast is not finite
        InvalidAmount: risk is negative or not finite
    """
    forecast = Decimal(str(forecast)) if not isinstance(forecast, Decimal) else forecast
    risk = Decimal(str(risk)) if not isinstance(risk, Decimal) else risk

    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner_or_operator(state, caller, "update_forecast")
    if not isinstance(time, datetime):
        raise ValueError(f"time must be a datetime, got {type(time)}")
    if is_timezone_aware(time) != is_timezone_aware(state['expiration_time']):
        raise ValueError(
            f"time {time} and expiration {state['expiration_time']} must both be "
            f"timezone-aware or both naive"
        )
    if not forecast.is_finite():
        raise ValueError(f"forecast must be finite, got {forecast}")
    if not risk.is_finite() or risk < _ZERO:
        raise InvalidAmount(f"forecast risk must be a non-negative percentage, got {risk}")

    new_state = copy.deepcopy(state)
    new_state['valuation_time'] = time
    new_state['forecast'] = forecast
    new_state['forecast_risk'] = risk
    return _commit(view, symbol, state, new_state, caller, "FORECAST", OriginType.EXTERNAL)


# ============================================================================
# PREMIUM AND PURCHASE
# ============================================================================

def get_premium(view: LedgerView, symbol: str, notional: Decimal) -> Decimal:
    """
    Quote the premium for a notional under the current forecast.

        premium = intrinsic_value(notional)
                + trunc(notional * forecast_risk / 100)
                + minimum_premium

    Pure: identical state and notional always give the identical quote.

    Raises:
        InvalidAmount: notional is negative or not finite
    """
    notional = Decimal(str(notional)) if not isinstance(notional, Decimal) else notional
    if not notional.is_finite() or notional < _ZERO:
        raise InvalidAmount(f"notional must be non-negative, got {notional}")
    return _premium(view.get_unit_state(symbol), notional)


def compute_purchase(
    view: LedgerView,
    symbol: str,
    buyer: str,
    notional: Decimal,
    payment: Decimal,
) -> PendingTransaction:
    """
    Buy notional exposure, paying at least the quoted premium.

    The whole payment is kept by the engine and recorded as premium paid;
    overpayment is not refunded.

    Raises (checked in this order):
        ContractTerminated: engine destroyed
        ContractNotActive: no forecast recorded yet
        ContractExpired: valuation time already past expiration
        InvalidAmount: notional not a positive whole amount, or payment
                       not a non-negative whole amount
        PremiumTooLow: payment below get_premium(notional)
    """
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    if state['valuation_time'] is None:
        raise ContractNotActive(f"{symbol} has no forecast yet")
    if state['expiration_time'] < state['valuation_time']:
        raise ContractExpired(
            f"{symbol} valued at {state['valuation_time']}, after expiration {state['expiration_time']}"
        )
    notional = _whole_amount(notional, "notional")
    payment = _whole_amount(payment, "payment", allow_zero=True)
    premium = _premium(state, notional)
    if payment < premium:
        raise PremiumTooLow(f"payment {payment} below premium {premium} for notional {notional}")

    new_state = copy.deepcopy(state)
    position = new_state['positions'].get(buyer, {'notional': _ZERO, 'premium_paid': _ZERO})
    if position['notional'] == _ZERO and buyer not in new_state['participants']:
        new_state['participants'].append(buyer)
    new_state['positions'][buyer] = {
        'notional': position['notional'] + notional,
        'premium_paid': position['premium_paid'] + payment,
    }

    moves: List[Move] = []
    if payment > _ZERO:
        moves.append(Move(
            quantity=payment,
            unit_symbol=state['currency'],
            source=buyer,
            dest=symbol,
            contract_id=f"premium_{symbol}",
        ))
    events = [PurchaseEvent(buyer=buyer, notional=notional, payment=payment)]
    return _commit(view, symbol, state, new_state, buyer, "PURCHASE",
                   OriginType.USER_ACTION, moves, events)


# ============================================================================
# FUNDING, PAYOUT AND TERMINATION
# ============================================================================

def compute_funding(
    view: LedgerView,
    symbol: str,
    caller: str,
    amount: Decimal,
) -> PendingTransaction:
    """Owner deposits collateral into the engine wallet to back payouts."""
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner(state, caller, "fund")
    amount = _whole_amount(amount, "funding amount")

    moves = [Move(
        quantity=amount,
        unit_symbol=state['currency'],
        source=caller,
        dest=symbol,
        contract_id=f"collateral_{symbol}",
    )]
    return _commit(view, symbol, state, copy.deepcopy(state), caller, "FUND", moves=moves)


def compute_payout(
    view: LedgerView,
    symbol: str,
    caller: str,
    participant: str,
) -> PendingTransaction:
    """
    Settle one participant at the current forecast.

    The participant's notional is always zeroed. Currency moves and a
    PayoutEvent are produced only when the intrinsic value is positive.

    Raises:
        ContractTerminated: engine destroyed
        Unauthorized: caller is not the owner
        ContractStillActive: valuation has not reached expiration
    """
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner(state, caller, "pay_out")
    _require_valuation_reached(state, symbol, "pay_out")

    position = state['positions'].get(participant)
    notional = position['notional'] if position else _ZERO
    amount = _intrinsic_value(state, notional)

    new_state = copy.deepcopy(state)
    if position is not None:
        new_state['positions'][participant] = {**position, 'notional': _ZERO}

    moves: List[Move] = []
    events = []
    if amount > _ZERO:
        moves.append(Move(
            quantity=amount,
            unit_symbol=state['currency'],
            source=symbol,
            dest=participant,
            contract_id=f"payout_{symbol}",
        ))
        events.append(PayoutEvent(participant=participant, notional=notional, amount=amount))
    return _commit(view, symbol, state, new_state, caller, "PAYOUT", moves=moves, events=events)


def compute_destroy(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """
    Terminate a settled engine: sweep its wallet to the owner and release storage.

    Raises:
        ContractTerminated: engine already destroyed
        Unauthorized: caller is not the owner
        ContractStillActive: valuation has not reached expiration
        PositionsNotSettled: some participant still holds notional
    """
    state = view.get_unit_state(symbol)
    _require_live(state, symbol)
    require_owner(state, caller, "destroy")
    _require_valuation_reached(state, symbol, "destroy")
    if not _all_settled(state):
        raise PositionsNotSettled(f"{symbol} still has open positions")

    currency = state['currency']
    residual = view.get_balance(symbol, currency)
    moves: List[Move] = []
    if residual > _ZERO:
        moves.append(Move(
            quantity=residual,
            unit_symbol=currency,
            source=symbol,
            dest=state['owner'],
            contract_id=f"sweep_{symbol}",
        ))

    new_state = copy.deepcopy(state)
    new_state['positions'] = {}
    new_state['participants'] = []
    new_state['operators'] = set()
    new_state['terminated'] = True
    return _commit(view, symbol, state, new_state, caller, "DESTROY", moves=moves)


# ============================================================================
# VIEWS
# ============================================================================

def is_settled(view: LedgerView, symbol: str, caller: str) -> bool:
    """
    True iff every participant ever recorded holds zero notional.

    Vacuously true with no participants. Owner or operator only.
    """
    state = view.get_unit_state(symbol)
    require_owner_or_operator(state, caller, "is_settled")
    return _all_settled(state)


def get_position(view: LedgerView, symbol: str, participant: str) -> Position:
    position = view.get_unit_state(symbol)['positions'].get(participant)
    if position is None:
        return Position(notional=_ZERO, premium_paid=_ZERO)
    return Position(notional=position['notional'], premium_paid=position['premium_paid'])


def get_forecast(view: LedgerView, symbol: str) -> ForecastState:
    state = view.get_unit_state(symbol)
    return ForecastState(
        valuation_time=state['valuation_time'],
        forecast=state['forecast'],
        forecast_risk=state['forecast_risk'],
    )


def list_participants(view: LedgerView, symbol: str) -> List[str]:
    """Participants in first-purchase order, including already settled ones."""
    return list(view.get_unit_state(symbol)['participants'])


def list_operators(view: LedgerView, symbol: str) -> List[str]:
    return sorted(view.get_unit_state(symbol)['operators'])


def engine_balance(view: LedgerView, symbol: str) -> Decimal:
    """Currency held in the engine's custody wallet."""
    return view.get_balance(symbol, view.get_unit_state(symbol)['currency'])


def get_intrinsic_value(view: LedgerView, symbol: str, notional: Decimal) -> Decimal:
    """Settlement amount a notional would receive at the current forecast."""
    notional = Decimal(str(notional)) if not isinstance(notional, Decimal) else notional
    return _intrinsic_value(view.get_unit_state(symbol), notional)


def get_lifecycle_state(view: LedgerView, symbol: str) -> LifecycleState:
    """
    Classify the engine using its state and the ledger clock.

    The ledger clock only distinguishes CREATED/ACTIVE from
    EXPIRED_UNVALUED; purchase and payout checks use valuation time alone.
    """
    state = view.get_unit_state(symbol)
    if state['terminated']:
        return LifecycleState.TERMINATED

    expiration_time = state['expiration_time']
    valuation_time = state['valuation_time']
    if valuation_time is not None and valuation_time >= expiration_time:
        if _all_settled(state):
            return LifecycleState.SETTLED
        return LifecycleState.VALUATION_REACHED
    if view.current_time > expiration_time:
        return LifecycleState.EXPIRED_UNVALUED
    if valuation_time is None:
        return LifecycleState.CREATED
    return LifecycleState.ACTIVE
