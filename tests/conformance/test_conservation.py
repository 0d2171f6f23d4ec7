"""
Conservation Conformance Tests

INVARIANT: An engine only moves currency; it never creates or destroys it.

    ∀ engine lifecycle L:
        Σ balances(currency) after L = Σ balances(currency) before L
        engine custody = premiums + collateral - payouts - sweep >= 0

Premiums, collateral, payouts and the final sweep are ordinary moves, so
double-entry holds after every step.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal
from datetime import datetime
from typing import List, Tuple

from parametric_ledger import (
    Ledger, Move, ExecuteResult, cash, build_transaction,
    InsuranceEngine, InsufficientFunds, PurchaseEvent, PayoutEvent,
    SYSTEM_WALLET, PAYOFF_LONG, PAYOFF_SHORT,
)


T0 = datetime(2025, 6, 1)
EXPIRY = datetime(2025, 7, 31)
BUYERS = ["farmer", "baker", "miller"]


# =============================================================================
# STRATEGIES
# =============================================================================

@st.composite
def insurance_scenario(draw):
    """Generate engine terms, a list of purchases and a final valuation."""
    payoff = draw(st.sampled_from([PAYOFF_LONG, PAYOFF_SHORT]))
    condition = Decimal(draw(st.integers(min_value=-20, max_value=100)))
    forecast = condition + Decimal(draw(st.integers(min_value=-5, max_value=5)))
    risk = Decimal(draw(st.integers(min_value=0, max_value=50)))
    purchases: List[Tuple[str, Decimal]] = draw(st.lists(
        st.tuples(st.sampled_from(BUYERS), st.integers(min_value=1, max_value=200).map(Decimal)),
        min_size=1, max_size=8,
    ))
    collateral = Decimal(draw(st.integers(min_value=0, max_value=20000)))
    final = condition + Decimal(draw(st.integers(min_value=-30, max_value=30)))
    return {
        'payoff': payoff, 'condition': condition, 'forecast': forecast,
        'risk': risk, 'purchases': purchases, 'collateral': collateral,
        'final': final,
    }


def _ledger():
    ledger = Ledger("conservation", T0, verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    for wallet in ["insurer", "oracle"] + BUYERS:
        ledger.register_wallet(wallet)
        tx = build_transaction(ledger, [
            Move(Decimal("100000"), "ETH", SYSTEM_WALLET, wallet, f"issue_{wallet}")
        ])
        assert ledger.execute(tx) == ExecuteResult.APPLIED
    return ledger


def _total(ledger):
    return sum((ledger.get_balance(w, "ETH") for w in ledger.list_wallets()), Decimal("0"))


class TestConservationProperties:
    """Property-based conservation tests over whole engine lifecycles."""

    @given(insurance_scenario())
    @settings(max_examples=40, deadline=None)
    def test_lifecycle_conserves_currency(self, scenario):
        """
        PROPERTY: Total currency is unchanged by purchases, funding, payouts
        and the final sweep; custody never goes negative.
        """
        ledger = _ledger()
        engine = InsuranceEngine.deploy(
            ledger, "HEAT", owner="insurer", location="NYC",
            expiration_time=EXPIRY, condition=scenario['condition'],
            currency="ETH", payoff=scenario['payoff'], operators=["oracle"],
        )
        total_before = _total(ledger)

        engine.update_forecast("oracle", T0, scenario['forecast'], scenario['risk'])
        for buyer, notional in scenario['purchases']:
            engine.buy_insurance(buyer, notional, max(engine.get_premium(notional), Decimal("1")))
            assert _total(ledger) == total_before
        collateral = scenario['collateral']
        if collateral:
            engine.fund("insurer", collateral)

        engine.update_forecast("oracle", EXPIRY, scenario['final'], scenario['risk'])
        for participant in engine.list_participants():
            try:
                engine.pay_out("insurer", participant)
            except InsufficientFunds:
                # Custody exhausted; top up from the owner and retry
                top_up = engine.get_intrinsic_value(engine.get_position(participant).notional)
                engine.fund("insurer", top_up)
                collateral += top_up
                engine.pay_out("insurer", participant)
            assert engine.balance() >= 0
            assert _total(ledger) == total_before

        premiums = sum((ev.payment for ev in engine.events() if isinstance(ev, PurchaseEvent)), Decimal("0"))
        payouts = sum((ev.amount for ev in engine.events() if isinstance(ev, PayoutEvent)), Decimal("0"))
        assert engine.balance() == premiums + collateral - payouts
        insurer_before = ledger.get_balance("insurer", "ETH")

        residual = engine.destroy("insurer")

        assert residual == engine.ledger.get_balance("insurer", "ETH") - insurer_before
        assert engine.balance() == Decimal("0")
        assert _total(ledger) == total_before
        assert ledger.verify_double_entry({"ETH": Decimal("0")})["valid"]


class TestConservationExamples:

    def test_rejected_payout_conserves(self):
        ledger = _ledger()
        engine = InsuranceEngine.deploy(
            ledger, "HEAT", owner="insurer", location="NYC",
            expiration_time=EXPIRY, condition=Decimal("70"), currency="ETH",
            operators=["oracle"],
        )
        engine.update_forecast("oracle", T0, Decimal("68"), Decimal("10"))
        engine.buy_insurance("farmer", Decimal("100"), Decimal("10"))
        engine.update_forecast("oracle", EXPIRY, Decimal("90"), Decimal("10"))
        total_before = _total(ledger)

        with pytest.raises(InsufficientFunds):
            engine.pay_out("insurer", "farmer")

        assert _total(ledger) == total_before
        assert engine.balance() == Decimal("10")

    def test_sweep_returns_everything_to_owner(self):
        ledger = _ledger()
        engine = InsuranceEngine.deploy(
            ledger, "HEAT", owner="insurer", location="NYC",
            expiration_time=EXPIRY, condition=Decimal("70"), currency="ETH",
            operators=["oracle"],
        )
        engine.update_forecast("oracle", T0, Decimal("60"), Decimal("10"))
        engine.buy_insurance("farmer", Decimal("100"), Decimal("40"))
        engine.fund("insurer", Decimal("500"))
        engine.update_forecast("oracle", EXPIRY, Decimal("60"), Decimal("10"))
        engine.pay_out_all("insurer")

        assert engine.destroy("insurer") == Decimal("540")
        assert ledger.get_balance("insurer", "ETH") == Decimal("100040")
        assert ledger.get_balance("farmer", "ETH") == Decimal("99960")
