"""
conftest.py - Shared pytest fixtures for settlement ledger tests

Provides common fixtures used across unit and functional tests:
- Basic ledgers (two wallets, funded)
- Insurance ledgers with a deployed weather insurance engine
- Engine state factory for FakeView-based contract tests
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from parametric_ledger import (
    Ledger, Move, ExecuteResult,
    build_transaction, cash,
    SYSTEM_WALLET,
    InsuranceEngine,
    create_weather_insurance_unit,
)

from tests.fake_view import FakeView


T0 = datetime(2025, 6, 1)
EXPIRY = datetime(2025, 7, 31)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def issue(ledger: Ledger, wallet: str, amount: Decimal, currency: str = "ETH") -> None:
    """Fund a wallet from SYSTEM_WALLET through a logged transaction."""
    tx = build_transaction(ledger, [
        Move(Decimal(amount), currency, SYSTEM_WALLET, wallet, f"issue_{wallet}")
    ])
    assert ledger.execute(tx) == ExecuteResult.APPLIED


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def basic_ledger():
    """Ledger with ETH and two wallets."""
    ledger = Ledger("test", T0, verbose=False, test_mode=True)
    ledger.register_unit(cash("ETH", "Ether"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def funded_ledger(basic_ledger):
    """Basic ledger with alice holding 10,000 ETH."""
    basic_ledger.set_balance("alice", "ETH", Decimal("10000"))
    return basic_ledger


# =============================================================================
# INSURANCE FIXTURES
# =============================================================================

@pytest.fixture
def insurance_ledger():
    """Ledger with ETH and funded insurer, oracle and participant wallets."""
    ledger = Ledger("weather", T0, verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    for wallet in ("insurer", "oracle", "farmer", "baker", "intruder"):
        ledger.register_wallet(wallet)

    issue(ledger, "insurer", Decimal("100000"))
    issue(ledger, "farmer", Decimal("50000"))
    issue(ledger, "baker", Decimal("50000"))
    return ledger


@pytest.fixture
def engine(insurance_ledger):
    """Long heat engine on NYC, condition 70, no forecast yet."""
    return InsuranceEngine.deploy(
        insurance_ledger,
        "HEAT_NYC_JUL",
        owner="insurer",
        location="NYC Central Park",
        expiration_time=EXPIRY,
        condition=Decimal("70"),
        currency="ETH",
    )


@pytest.fixture
def active_engine(engine):
    """Engine with oracle as operator and a forecast of 68 at 10% risk."""
    engine.add_operator("insurer", "oracle")
    engine.update_forecast("oracle", T0 + timedelta(days=1), Decimal("68"), Decimal("10"))
    return engine


# =============================================================================
# FAKE VIEW FIXTURES
# =============================================================================

@pytest.fixture
def make_weather_state():
    """Factory for engine state dicts: fresh engine terms plus overrides."""
    def _make(**overrides):
        unit = create_weather_insurance_unit(
            symbol="HEAT",
            name="Heat Cover",
            owner="insurer",
            location="NYC",
            expiration_time=EXPIRY,
            condition=Decimal("70"),
            currency="ETH",
            operators=overrides.pop('operators', ("oracle",)),
        )
        state = unit.state
        state.update(overrides)
        return state
    return _make


@pytest.fixture
def insurance_view(make_weather_state):
    """FakeView with an active engine HEAT and a funded participant."""
    return FakeView(
        balances={
            "farmer": {"ETH": Decimal("50000")},
            "HEAT": {"ETH": Decimal("0")},
        },
        states={
            "HEAT": make_weather_state(
                valuation_time=T0,
                forecast=Decimal("68"),
                forecast_risk=Decimal("10"),
            ),
        },
        time=T0,
    )
