"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the settlement ledger and
the weather insurance engine. Any compliant implementation MUST pass
these tests.

The tests are organized by invariant:
1. conservation.py - Currency is neither created nor destroyed by an engine
2. atomicity.py - Rejected operations leave state and balances untouched
3. idempotency.py - Duplicate execution handling
4. determinism.py - Pure quotes and reproducible replay
5. premium.py - Premium formula properties
6. settlement.py - Payout amounts and participant bookkeeping
7. temporal.py - Valuation time and lifecycle ordering

These tests use hypothesis for property-based testing.
"""
