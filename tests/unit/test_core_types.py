"""
test_core_types.py - Unit tests for core data structures

Tests:
- Move: creation, validation, immutability
- Transaction: creation, validation, repr
- UnitStateChange: changed_fields
- Contract events: field order, immutability
- intent_id: content addressing
- Unit: rounding, cash factory
"""

import pytest
from datetime import datetime
from decimal import Decimal
from parametric_ledger import (
    Move, Transaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType, PendingTransaction,
    PurchaseEvent, PayoutEvent,
    InsuranceError, LedgerError, Unauthorized, PremiumTooLow, InvalidAmount,
    ContractNotActive, ContractExpired, ContractStillActive,
    PositionsNotSettled, ContractTerminated,
    cash,
)


def _test_origin() -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=OriginType.USER_ACTION,
        source_id="test",
    )


def _tx(**overrides) -> Transaction:
    fields = dict(
        moves=(Move(Decimal("100"), "ETH", "alice", "bob", "tx_001"),),
        state_changes=(),
        origin=_test_origin(),
        timestamp=datetime(2025, 1, 1),
        intent_id="intent_123",
        exec_id="exec_123",
        ledger_name="test",
        execution_time=datetime(2025, 1, 1),
        sequence_number=0,
    )
    fields.update(overrides)
    return Transaction(**fields)


class TestMoveCreation:
    """Tests for Move creation and validation."""

    def test_create_valid_move(self):
        move = Move(Decimal("100"), "ETH", "alice", "bob", "tx_001")
        assert move.source == "alice"
        assert move.dest == "bob"
        assert move.unit_symbol == "ETH"
        assert move.quantity == Decimal("100")
        assert move.contract_id == "tx_001"
        assert move.metadata is None

    def test_move_with_metadata(self):
        metadata = {"note": "premium"}
        move = Move(Decimal("100"), "ETH", "alice", "bob", "tx_001", metadata)
        assert move.metadata == metadata

    def test_move_zero_quantity_raises(self):
        with pytest.raises(ValueError, match="quantity is effectively zero"):
            Move(Decimal("0"), "ETH", "alice", "bob", "tx_001")

    def test_move_same_source_dest_raises(self):
        with pytest.raises(ValueError, match="Source and dest must be different"):
            Move(Decimal("100"), "ETH", "alice", "alice", "tx_001")

    def test_move_float_quantity_raises(self):
        with pytest.raises(ValueError, match="must be Decimal"):
            Move(100.0, "ETH", "alice", "bob", "tx_001")

    def test_move_nan_quantity_raises(self):
        with pytest.raises(ValueError, match="finite"):
            Move(Decimal("NaN"), "ETH", "alice", "bob", "tx_001")

    def test_move_inf_quantity_raises(self):
        with pytest.raises(ValueError, match="finite"):
            Move(Decimal("Infinity"), "ETH", "alice", "bob", "tx_001")

    @pytest.mark.parametrize("field", ["source", "dest", "unit_symbol", "contract_id"])
    def test_move_empty_identifiers_raise(self, field):
        kwargs = dict(quantity=Decimal("1"), unit_symbol="ETH", source="alice",
                      dest="bob", contract_id="tx_001")
        kwargs[field] = "  "
        with pytest.raises(ValueError, match="cannot be empty"):
            Move(**kwargs)

    def test_move_is_frozen(self):
        move = Move(Decimal("100"), "ETH", "alice", "bob", "tx_001")
        with pytest.raises(AttributeError):
            move.quantity = Decimal("200")

    def test_move_repr_contains_fields(self):
        repr_str = repr(Move(Decimal("100"), "ETH", "alice", "bob", "tx_001"))
        assert "alice" in repr_str
        assert "bob" in repr_str
        assert "ETH" in repr_str
        assert "100" in repr_str


class TestTransaction:
    """Tests for Transaction dataclass."""

    def test_create_valid_transaction(self):
        tx = _tx()
        assert tx.exec_id == "exec_123"
        assert tx.contract_ids == frozenset({"tx_001"})
        assert tx.events == ()

    def test_transaction_multiple_contract_ids(self):
        tx = _tx(moves=(
            Move(Decimal("100"), "ETH", "alice", "HEAT", "premium_HEAT"),
            Move(Decimal("10"), "ETH", "HEAT", "bob", "payout_HEAT"),
        ))
        assert tx.contract_ids == frozenset({"premium_HEAT", "payout_HEAT"})

    def test_transaction_state_only(self):
        delta = UnitStateChange("HEAT", {"terminated": False}, {"terminated": True})
        tx = _tx(moves=(), state_changes=(delta,))
        assert len(tx.state_changes) == 1

    def test_transaction_empty_raises(self):
        with pytest.raises(ValueError, match="must have moves, state_changes, or units_to_create"):
            _tx(moves=())

    def test_transaction_is_frozen(self):
        tx = _tx()
        with pytest.raises(AttributeError):
            tx.exec_id = "new_id"

    def test_transaction_repr_includes_state_changes_and_events(self):
        delta = UnitStateChange("HEAT", {"forecast": Decimal("60")}, {"forecast": Decimal("85")})
        tx = _tx(
            state_changes=(delta,),
            events=(PayoutEvent("bob", Decimal("100"), Decimal("1500")),),
        )
        repr_str = repr(tx)
        assert "State Changes" in repr_str
        assert "forecast" in repr_str
        assert "Events (1)" in repr_str
        assert "PayoutEvent" in repr_str


class TestUnitStateChange:
    """Tests for UnitStateChange dataclass."""

    def test_changed_fields(self):
        sc = UnitStateChange(
            unit="HEAT",
            old_state={"forecast": Decimal("60"), "owner": "insurer"},
            new_state={"forecast": Decimal("85"), "owner": "insurer", "sequence": 1},
        )
        assert sc.changed_fields() == {
            "forecast": (Decimal("60"), Decimal("85")),
            "sequence": (None, 1),
        }

    def test_changed_fields_with_none_old_state(self):
        sc = UnitStateChange("HEAT", None, {"terminated": True})
        assert sc.changed_fields() == {"terminated": (None, True)}

    def test_state_change_is_frozen(self):
        sc = UnitStateChange("HEAT", {}, {})
        with pytest.raises(AttributeError):
            sc.unit = "COLD"


class TestContractEvents:
    """Tests for PurchaseEvent and PayoutEvent."""

    def test_purchase_event_field_order(self):
        event = PurchaseEvent("farmer", Decimal("100"), Decimal("12"))
        assert (event.buyer, event.notional, event.payment) == ("farmer", Decimal("100"), Decimal("12"))

    def test_payout_event_field_order(self):
        event = PayoutEvent("farmer", Decimal("100"), Decimal("1500"))
        assert (event.participant, event.notional, event.amount) == ("farmer", Decimal("100"), Decimal("1500"))

    def test_events_are_frozen(self):
        event = PayoutEvent("farmer", Decimal("100"), Decimal("1500"))
        with pytest.raises(AttributeError):
            event.amount = Decimal("0")


class TestIntentId:
    """Tests for content-addressed intent identifiers."""

    def _pending(self, moves=(), state_changes=(), events=()):
        return PendingTransaction(
            moves=tuple(moves),
            state_changes=tuple(state_changes),
            origin=_test_origin(),
            timestamp=datetime(2025, 1, 1),
            events=tuple(events),
        )

    def test_intent_id_ignores_timestamp(self):
        move = Move(Decimal("100"), "ETH", "alice", "bob", "tx_001")
        a = self._pending([move])
        b = PendingTransaction((move,), (), _test_origin(), datetime(2030, 1, 1))
        assert a.intent_id == b.intent_id

    def test_intent_id_normalizes_decimal_exponent(self):
        a = self._pending([Move(Decimal("100"), "ETH", "alice", "bob", "tx_001")])
        b = self._pending([Move(Decimal("100.00"), "ETH", "alice", "bob", "tx_001")])
        assert a.intent_id == b.intent_id

    def test_intent_id_independent_of_set_order(self):
        a = self._pending(state_changes=[UnitStateChange("HEAT", {}, {"operators": {"x", "y", "z"}})])
        b = self._pending(state_changes=[UnitStateChange("HEAT", {}, {"operators": {"z", "y", "x"}})])
        assert a.intent_id == b.intent_id

    def test_intent_id_covers_events(self):
        move = Move(Decimal("12"), "ETH", "farmer", "HEAT", "premium_HEAT")
        a = self._pending([move], events=[PurchaseEvent("farmer", Decimal("100"), Decimal("12"))])
        b = self._pending([move], events=[PurchaseEvent("farmer", Decimal("101"), Decimal("12"))])
        assert a.intent_id != b.intent_id

    def test_is_empty(self):
        assert self._pending().is_empty()


class TestInsuranceErrors:
    """Named rejections share one base class under LedgerError."""

    @pytest.mark.parametrize("error", [
        Unauthorized, PremiumTooLow, InvalidAmount, ContractNotActive,
        ContractExpired, ContractStillActive, PositionsNotSettled, ContractTerminated,
    ])
    def test_hierarchy(self, error):
        assert issubclass(error, InsuranceError)
        assert issubclass(error, LedgerError)


class TestUnitFactories:
    """Tests for unit factory functions."""

    def test_cash_unit_defaults(self):
        eth = cash("ETH", "Ether")
        assert eth.symbol == "ETH"
        assert eth.unit_type == "CASH"
        assert eth.decimal_places == 0
        assert eth.min_balance == Decimal("0")
        assert eth.state == {"issuer": "system"}

    def test_cash_rounds_down_to_base_units(self):
        eth = cash("ETH", "Ether")
        assert eth.round(Decimal("100.9")) == Decimal("100")
        assert eth.round(Decimal("-100.9")) == Decimal("-100")

    def test_cash_with_decimals(self):
        usd = cash("USD", "US Dollar", decimal_places=2)
        assert usd.round(Decimal("100.456")) == Decimal("100.45")


class TestUnitRounding:
    """Tests for Unit.round() method."""

    def test_round_half_even_for_other_types(self):
        unit = Unit("IDX", "Index", "WEATHER", decimal_places=0)
        assert unit.round(Decimal("10.5")) == Decimal("10")
        assert unit.round(Decimal("11.5")) == Decimal("12")

    def test_round_none_decimal_places(self):
        unit = Unit("NOROUND", "No Rounding", "WEATHER", decimal_places=None)
        value = Decimal("100.123456789")
        assert unit.round(value) == value

    def test_state_is_fresh_copy(self):
        unit = cash("ETH", "Ether")
        state = unit.state
        state["issuer"] = "mallory"
        assert unit.state["issuer"] == "system"
