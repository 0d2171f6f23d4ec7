"""
parametric_ledger - Parametric Weather Insurance Settlement

A double-entry ledger hosting weather insurance engines: participants buy
notional exposure against a weather condition, premiums are held in the
engine's custody wallet, and payouts are computed from a published forecast.

Usage:
    from parametric_ledger import (
        Ledger, InsuranceEngine, Move, build_transaction, cash, SYSTEM_WALLET,
    )

    ledger = Ledger("weather", datetime(2025, 6, 1))
    ledger.register_unit(cash("ETH", "Ether"))
    ledger.register_wallet("insurer")
    ledger.register_wallet("farmer")

    # Fund wallets via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("100000"), "ETH", SYSTEM_WALLET, "farmer", "initial_balance")
    ]))

    engine = InsuranceEngine.deploy(
        ledger, "HEAT_NYC_JUL", owner="insurer", location="NYC",
        expiration_time=datetime(2025, 7, 31), condition=Decimal("70"),
        currency="ETH",
    )
    engine.update_forecast("insurer", datetime(2025, 6, 2), Decimal("68"), Decimal("10"))
    premium = engine.get_premium(Decimal("100"))
    engine.buy_insurance("farmer", Decimal("100"), premium)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    PurchaseEvent,
    PayoutEvent,
    ContractEvent,
    LedgerError,
    InsufficientFunds,
    BalanceConstraintViolation,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    InsuranceError,
    Unauthorized,
    PremiumTooLow,
    InvalidAmount,
    ContractNotActive,
    ContractExpired,
    ContractStillActive,
    PositionsNotSettled,
    ContractTerminated,
    cash,
    SYSTEM_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_WEATHER_INSURANCE,
)

# Ledger
from .ledger import Ledger

# Access control
from .access import (
    is_owner,
    is_owner_or_operator,
    require_owner,
    require_owner_or_operator,
)

# Payoffs
from .payoffs import (
    IntrinsicValue,
    PAYOFF_LONG,
    PAYOFF_SHORT,
    long_intrinsic_value,
    short_intrinsic_value,
    register_payoff,
    get_payoff,
)

# Weather insurance engines
from .units.weather_insurance import (
    LifecycleState,
    Position,
    ForecastState,
    create_weather_insurance_unit,
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

from .engine import InsuranceEngine

# Fair-value analytics
from .analytics import (
    expected_intrinsic_value,
    fair_premium,
    payoff_profile,
    engine_fair_value,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'Unit', 'UnitStateChange', 'ExecuteResult',
    'PurchaseEvent', 'PayoutEvent', 'ContractEvent',
    'LedgerError', 'InsufficientFunds', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'InsuranceError', 'Unauthorized', 'PremiumTooLow', 'InvalidAmount',
    'ContractNotActive', 'ContractExpired', 'ContractStillActive',
    'PositionsNotSettled', 'ContractTerminated',
    'cash', 'SYSTEM_WALLET', 'UNIT_TYPE_CASH', 'UNIT_TYPE_WEATHER_INSURANCE',
    # Ledger
    'Ledger',
    # Access control
    'is_owner', 'is_owner_or_operator', 'require_owner', 'require_owner_or_operator',
    # Payoffs
    'IntrinsicValue', 'PAYOFF_LONG', 'PAYOFF_SHORT',
    'long_intrinsic_value', 'short_intrinsic_value', 'register_payoff', 'get_payoff',
    # Weather insurance
    'LifecycleState', 'Position', 'ForecastState',
    'create_weather_insurance_unit', 'compute_deployment',
    'compute_add_operator', 'compute_remove_operator', 'compute_set_minimum_premium',
    'compute_forecast_update', 'compute_purchase', 'compute_funding',
    'compute_payout', 'compute_destroy',
    'get_premium', 'get_intrinsic_value', 'get_position', 'get_forecast',
    'get_lifecycle_state', 'is_settled', 'list_participants', 'list_operators',
    'engine_balance',
    'InsuranceEngine',
    # Analytics
    'expected_intrinsic_value', 'fair_premium', 'payoff_profile', 'engine_fair_value',
]

__version__ = '1.0.0'
