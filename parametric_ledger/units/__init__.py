"""
Units module - Factory and contract functions for settlement engines.

Weather insurance engines are the only contract unit type: the factory fixes
the terms, and the compute_* functions return PendingTransactions for each
operation of the engine lifecycle.
"""

from .weather_insurance import (
    LifecycleState,
    Position,
    ForecastState,
    create_weather_insurance_unit,
    insurance_transfer_rule,
    compute_deployment,
    compute_add_operator,
    compute_remove_operator,
    compute_set_minimum_premium,
    compute_forecast_update,
    compute_purchase,
    compute_funding,
    compute_payout,
    compute_destroy,
    get_premium,
    get_intrinsic_value,
    get_position,
    get_forecast,
    get_lifecycle_state,
    is_settled,
    list_participants,
    list_operators,
    engine_balance,
)

__all__ = [
    'LifecycleState',
    'Position',
    'ForecastState',
    'create_weather_insurance_unit',
    'insurance_transfer_rule',
    'compute_deployment',
    'compute_add_operator',
    'compute_remove_operator',
    'compute_set_minimum_premium',
    'compute_forecast_update',
    'compute_purchase',
    'compute_funding',
    'compute_payout',
    'compute_destroy',
    'get_premium',
    'get_intrinsic_value',
    'get_position',
    'get_forecast',
    'get_lifecycle_state',
    'is_settled',
    'list_participants',
    'list_operators',
    'engine_balance',
]
