"""
payoffs.py - Intrinsic Value Functions for Weather Insurance

An intrinsic value function maps (notional, forecast, condition) to the
settlement amount owed for that notional, before any premium accounting.
It is the single extension point of the settlement engine: an engine names
its payoff at creation and every premium quote and payout resolves the
function through this registry.

Built-in directions:
    long  - pays when the forecast exceeds the condition
            max(forecast - condition, 0) * notional
    short - pays when the forecast falls below the condition
            max(condition - forecast, 0) * notional

Adding a direction never touches the engine:

    def band(notional, forecast, condition):
        return notional if abs(forecast - condition) > 5 else Decimal("0")

    register_payoff("band", band)
"""

from __future__ import annotations
from decimal import Decimal
from typing import Callable, Dict


IntrinsicValue = Callable[[Decimal, Decimal, Decimal], Decimal]

PAYOFF_LONG = "long"
PAYOFF_SHORT = "short"


def long_intrinsic_value(notional: Decimal, forecast: Decimal, condition: Decimal) -> Decimal:
    """Pays (forecast - condition) per unit of notional when the forecast is above the strike."""
    return max(forecast - condition, Decimal("0")) * notional


def short_intrinsic_value(notional: Decimal, forecast: Decimal, condition: Decimal) -> Decimal:
    """Pays (condition - forecast) per unit of notional when the forecast is below the strike."""
    return max(condition - forecast, Decimal("0")) * notional


PAYOFFS: Dict[str, IntrinsicValue] = {
    PAYOFF_LONG: long_intrinsic_value,
    PAYOFF_SHORT: short_intrinsic_value,
}


def register_payoff(name: str, fn: IntrinsicValue, replace: bool = False) -> None:
    """
    Register an intrinsic value function under a name.

    Raises:
        ValueError: If the name is empty, or already taken and replace is False
    """
    if not name or not name.strip():
        raise ValueError("payoff name cannot be empty")
    if not callable(fn):
        raise ValueError(f"payoff {name} must be callable")
    if name in PAYOFFS and not replace:
        raise ValueError(f"payoff {name} already registered")
    PAYOFFS[name] = fn


def get_payoff(name: str) -> IntrinsicValue:
    """
    Resolve a payoff by name.

    Raises:
        ValueError: If no payoff is registered under that name
    """
    try:
        return PAYOFFS[name]
    except KeyError:
        raise ValueError(
            f"unknown payoff {name!r}; registered: {sorted(PAYOFFS)}"
        ) from None
