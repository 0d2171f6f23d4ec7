"""
weather_insurance_example.py - Step-by-Step Weather Insurance Example

Demonstrates the complete lifecycle of a parametric heat-wave cover:
1. Setup: Create ledger, register the settlement currency, fund wallets
2. Deployment: Deploy the engine and appoint a forecast operator
3. Pricing: Publish a forecast, quote premiums, compare with fair value
4. Sales: Participants buy notional exposure
5. Valuation: Publish the forecast at expiration
6. Settlement: Pay out every participant, then destroy the engine

Run this file directly:
    python weather_insurance_example.py
"""

from datetime import datetime, timedelta
from decimal import Decimal
from parametric_ledger import (
    # Core
    Ledger, Move, cash, build_transaction, SYSTEM_WALLET,

    # Engine
    InsuranceEngine, PAYOFF_LONG,
    PremiumTooLow, ContractStillActive,
)
from parametric_ledger.analytics import engine_fair_value, payoff_profile


def show_balances(ledger: Ledger, engine: InsuranceEngine, wallets) -> None:
    for wallet in wallets:
        print(f"  {wallet:<10} {ledger.get_balance(wallet, engine.currency):>10,} {engine.currency}")
    print(f"  {'engine':<10} {engine.balance():>10,} {engine.currency}")


def main():
    print("=" * 70)
    print("PARAMETRIC HEAT-WAVE COVER - COMPLETE LIFECYCLE EXAMPLE")
    print("=" * 70)

    # =========================================================================
    # STEP 1: SETUP
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 1: SETUP")
    print("=" * 70)
    print("""
    We create a ledger and register:
    - ETH (whole-unit settlement currency)
    - insurer (engine owner), oracle (forecast operator)
    - farmer and baker (buyers of cover)
    """)

    ledger = Ledger(
        name="weather_demo",
        initial_time=datetime(2025, 6, 1, 9, 0),
        verbose=False,
    )
    ledger.register_unit(cash("ETH", "Ether"))
    for wallet in ("insurer", "oracle", "farmer", "baker"):
        ledger.register_wallet(wallet)

    funding_tx = build_transaction(ledger, [
        Move(Decimal("100000"), "ETH", SYSTEM_WALLET, "insurer", "fund_insurer"),
        Move(Decimal("5000"), "ETH", SYSTEM_WALLET, "farmer", "fund_farmer"),
        Move(Decimal("5000"), "ETH", SYSTEM_WALLET, "baker", "fund_baker"),
    ])
    ledger.execute(funding_tx)

    # =========================================================================
    # STEP 2: DEPLOYMENT
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 2: DEPLOYMENT")
    print("=" * 70)
    print("""
    The cover pays notional * (temperature - 30) when the forecast for
    NYC at expiration is above 30 degrees.
    """)

    expiry = datetime(2025, 7, 31)
    engine = InsuranceEngine.deploy(
        ledger, "HEAT_NYC_JUL",
        owner="insurer",
        location="New York City",
        expiration_time=expiry,
        condition=Decimal("30"),
        currency="ETH",
        payoff=PAYOFF_LONG,
    )
    engine.verbose = True
    engine.add_operator("insurer", "oracle")
    engine.set_minimum_premium("insurer", Decimal("2"))
    print(engine)
    print(f"Operators: {engine.list_operators()}")
    print(f"Lifecycle: {engine.get_lifecycle_state().value}")

    # =========================================================================
    # STEP 3: PRICING
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 3: PRICING")
    print("=" * 70)

    engine.update_forecast("oracle", ledger.current_time, Decimal("28.5"), Decimal("12"))
    print(f"Forecast: {engine.get_forecast()}")
    for notional in (Decimal("10"), Decimal("100"), Decimal("250")):
        print(f"  premium for notional {notional:>4}: {engine.get_premium(notional)} ETH")

    fair = engine_fair_value(ledger, engine.symbol, Decimal("100"), Decimal("2.5"))
    print(f"\nFair value of notional 100 with sigma 2.5: {fair}")

    print("\nPayoff at expiration for notional 100:")
    for forecast, amount in payoff_profile(Decimal("100"), Decimal("30"),
                                           [Decimal("29"), Decimal("31"), Decimal("33.5")]):
        print(f"  {forecast:>5} degrees -> {amount} ETH")

    # =========================================================================
    # STEP 4: SALES
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 4: SALES")
    print("=" * 70)

    try:
        engine.buy_insurance("baker", Decimal("100"), Decimal("5"))
    except PremiumTooLow:
        print("Baker's underpayment was refused; nothing changed.")

    engine.buy_insurance("farmer", Decimal("100"), engine.get_premium(Decimal("100")))
    engine.buy_insurance("baker", Decimal("40"), engine.get_premium(Decimal("40")))
    engine.fund("insurer", Decimal("600"))

    print(f"\nParticipants: {engine.list_participants()}")
    show_balances(ledger, engine, ("insurer", "farmer", "baker"))

    # =========================================================================
    # STEP 5: VALUATION
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 5: VALUATION")
    print("=" * 70)

    ledger.advance_time(ledger.current_time + timedelta(days=20))
    engine.update_forecast("oracle", ledger.current_time, Decimal("31"), Decimal("6"))
    try:
        engine.pay_out("insurer", "farmer")
    except ContractStillActive:
        print("Payouts stay closed until the forecast reaches expiration.")

    ledger.advance_time(expiry + timedelta(hours=6))
    engine.update_forecast("oracle", expiry, Decimal("33.4"), Decimal("0"))
    print(f"Lifecycle: {engine.get_lifecycle_state().value}")

    # =========================================================================
    # STEP 6: SETTLEMENT
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 6: SETTLEMENT")
    print("=" * 70)

    paid = engine.pay_out_all("insurer")
    print(f"Total paid out: {paid} ETH")
    print(f"Lifecycle: {engine.get_lifecycle_state().value}")

    residual = engine.destroy("insurer")
    print(f"Residual swept to insurer: {residual} ETH")
    print(f"Lifecycle: {engine.get_lifecycle_state().value}")
    show_balances(ledger, engine, ("insurer", "farmer", "baker"))

    print("\n--- Contract Events ---")
    for event in engine.events():
        print(f"  {event}")

    check = ledger.verify_double_entry({"ETH": Decimal("0")})
    print(f"\nDouble-entry check: {'OK' if check['valid'] else check}")


if __name__ == "__main__":
    main()
