"""
analytics.py - Fair-Value Analytics for Weather Insurance

Models the forecast at valuation as normally distributed around the current
forecast (Bachelier / arithmetic model, appropriate for signed weather
values such as temperature). Settlement never calls into this module; it is
used to judge how much loading a quoted premium carries over the expected
payout.

For a long payoff with forecast F, condition K and forecast error σ:

    E[max(X - K, 0)] = (F - K)·N(d) + σ·φ(d),   d = (F - K) / σ

and the short payoff mirrors it:

    E[max(K - X, 0)] = (K - F)·N(-d) + σ·φ(d)

Float functions accept scalars or numpy arrays; Decimal wrappers convert at
the boundary.
"""

import math
import numpy as np
from decimal import Decimal, ROUND_DOWN, ROUND_UP, ROUND_HALF_EVEN
from typing import Dict, Iterable, List, Tuple, Union
from scipy.special import erf as scipy_erf

from .core import LedgerView
from .payoffs import PAYOFF_LONG, PAYOFF_SHORT, get_payoff
from .units.weather_insurance import get_premium


Numeric = Union[float, np.ndarray]

SQRT_2 = math.sqrt(2.0)
INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)


def normal_cdf(x: Numeric) -> Numeric:
    """Standard normal cumulative distribution function."""
    return 0.5 * (1.0 + scipy_erf(np.asarray(x) / SQRT_2))


def normal_pdf(x: Numeric) -> Numeric:
    """Standard normal probability density function."""
    x = np.asarray(x)
    return INV_SQRT_2PI * np.exp(-0.5 * x * x)


def _validate_inputs(forecast: Numeric, condition: Numeric, sigma: Numeric) -> None:
    if not np.all(np.isfinite(np.asarray(forecast))):
        raise ValueError("forecast must be finite")
    if not np.all(np.isfinite(np.asarray(condition))):
        raise ValueError("condition must be finite")
    sigma_arr = np.asarray(sigma)
    if not np.all(np.isfinite(sigma_arr)) or np.any(sigma_arr < 0):
        raise ValueError("sigma must be non-negative and finite")


def expected_intrinsic_value(
    forecast: Numeric,
    condition: Numeric,
    sigma: Numeric,
    payoff: str = PAYOFF_LONG,
) -> Numeric:
    """
    Expected payout per unit of notional under a normal forecast error.

    With sigma == 0 this collapses to the intrinsic value at the forecast.

    Raises:
        ValueError: On non-finite inputs, negative sigma, or a payoff other
                    than long/short
    """
    if payoff not in (PAYOFF_LONG, PAYOFF_SHORT):
        raise ValueError(f"no closed form for payoff {payoff!r}")
    _validate_inputs(forecast, condition, sigma)

    f = np.asarray(forecast, dtype=float)
    k = np.asarray(condition, dtype=float)
    s = np.asarray(sigma, dtype=float)
    moneyness = f - k if payoff == PAYOFF_LONG else k - f

    # sigma of zero would divide by zero; those entries take the intrinsic branch
    safe_sigma = np.where(s > 0, s, 1.0)
    d = moneyness / safe_sigma
    diffusive = moneyness * normal_cdf(d) + safe_sigma * normal_pdf(d)
    result = np.where(s > 0, diffusive, np.maximum(moneyness, 0.0))
    return result.item() if result.ndim == 0 else result


def fair_premium(
    notional: Decimal,
    forecast: Decimal,
    condition: Decimal,
    sigma: Decimal,
    payoff: str = PAYOFF_LONG,
) -> Decimal:
    """
    Expected payout for a notional, rounded up to a whole base unit.

    Raises:
        ValueError: On negative notional or invalid model inputs
    """
    if notional < 0:
        raise ValueError(f"notional must be non-negative, got {notional}")
    per_unit = expected_intrinsic_value(float(forecast), float(condition), float(sigma), payoff)
    expected = Decimal(str(per_unit)) * notional
    return expected.quantize(Decimal("1e-8"), rounding=ROUND_HALF_EVEN).to_integral_value(rounding=ROUND_UP)


def payoff_profile(
    notional: Decimal,
    condition: Decimal,
    forecasts: Iterable[Decimal],
    payoff: str = PAYOFF_LONG,
) -> List[Tuple[Decimal, Decimal]]:
    """
    Settlement amount for a notional across a grid of forecasts.

    Uses the registered payoff (any name, not only long/short) and the same
    truncation to whole base units as settlement.
    """
    fn = get_payoff(payoff)
    return [
        (forecast, fn(notional, forecast, condition).to_integral_value(rounding=ROUND_DOWN))
        for forecast in forecasts
    ]


def engine_fair_value(
    view: LedgerView,
    symbol: str,
    notional: Decimal,
    sigma: Decimal,
) -> Dict[str, Decimal]:
    """
    Compare an engine's quoted premium with the model's expected payout.

    Returns:
        Dict with keys:
        - 'premium': quote from the engine for this notional
        - 'expected_payout': fair_premium() at the engine's current forecast
        - 'loading': premium minus expected payout

    Raises:
        ValueError: If the engine has no forecast yet
    """
    state = view.get_unit_state(symbol)
    if state['valuation_time'] is None:
        raise ValueError(f"{symbol} has no forecast yet")
    premium = get_premium(view, symbol, notional)
    expected = fair_premium(notional, state['forecast'], state['condition'], sigma, state['payoff'])
    return {
        'premium': premium,
        'expected_payout': expected,
        'loading': premium - expected,
    }
