"""
Tests for the VariableStore class and clamp().
"""

import threading

import pytest
from regency.db import Database, VariableStore, clamp
from regency.db.variable_store import SQLITE_MAX_INT, SQLITE_MIN_INT


class TestClamp:
    """Tests for saturation at bounds."""

    def test_within_bounds_unchanged(self):
        """Values inside the bounds pass through."""
        assert clamp(50, 0, 100) == 50

    def test_saturates_at_max(self):
        assert clamp(120, 0, 100) == 100

    def test_saturates_at_min(self):
        assert clamp(-5, 0, 100) == 0

    def test_unbounded_side_is_open(self):
        """A missing bound never limits the value."""
        assert clamp(10_000, 0, None) == 10_000
        assert clamp(-10_000, None, 100) == -10_000
        assert clamp(7) == 7

    def test_storage_range_always_applies(self):
        assert clamp(10 ** 30) == SQLITE_MAX_INT
        assert clamp(-(10 ** 30), None, 100) == SQLITE_MIN_INT


class TestDefine:
    """Tests for creating variables."""

    def test_define_variable(self, variable_store):
        """Can define a bounded variable."""
        var = variable_store.define(
            "treasury_level", "Treasury Level",
            current_value=50, min_value=0, max_value=100,
            description="Reserves"
        )

        assert var.id == "treasury_level"
        assert var.current_value == 50
        assert var.min_value == 0
        assert var.max_value == 100
        assert var.description == "Reserves"

    def test_starting_value_clamped(self, variable_store):
        """A starting value outside the bounds is clamped on definition."""
        var = variable_store.define("x", "X", current_value=150, min_value=0, max_value=100)
        assert var.current_value == 100

    def test_min_above_max_rejected(self, variable_store):
        with pytest.raises(ValueError):
            variable_store.define("x", "X", min_value=10, max_value=5)

    def test_redefine_replaces(self, variable_store):
        """Defining an existing id replaces its value and bounds."""
        variable_store.define("x", "X", current_value=5)
        variable_store.define("x", "X2", current_value=8, max_value=10)

        var = variable_store.get("x")
        assert var.name == "X2"
        assert var.current_value == 8
        assert var.max_value == 10

    def test_get_nonexistent(self, variable_store):
        """Returns None for unknown variables."""
        assert variable_store.get("nonexistent") is None

    def test_list_and_snapshot(self, variable_store):
        variable_store.define("b", "B", current_value=2)
        variable_store.define("a", "A", current_value=1)

        assert [v.id for v in variable_store.list_variables()] == ["a", "b"]
        assert variable_store.snapshot() == {"a": 1, "b": 2}

    def test_snapshot_is_detached(self, variable_store):
        """Mutating a snapshot does not affect storage."""
        variable_store.define("a", "A", current_value=1)
        snap = variable_store.snapshot()
        snap["a"] = 99

        assert variable_store.get("a").current_value == 1


class TestApplyDelta:
    """Tests for single-variable updates."""

    def test_apply_within_bounds(self, variable_store):
        variable_store.define("militarism_level", "Militarism", 30, 0, 100)
        assert variable_store.apply_delta("militarism_level", 15) == 45
        assert variable_store.get("militarism_level").current_value == 45

    def test_apply_clamps_high(self, variable_store):
        """A delta past the maximum saturates at the maximum."""
        variable_store.define("militarism_level", "Militarism", 30, 0, 100)
        assert variable_store.apply_delta("militarism_level", 90) == 100

    def test_apply_clamps_low(self, variable_store):
        variable_store.define("public_morale", "Morale", 10, 0, 100)
        assert variable_store.apply_delta("public_morale", -25) == 0

    def test_apply_unbounded(self, variable_store):
        """Unbounded variables accept any value."""
        variable_store.define("fame", "Fame", 0)
        assert variable_store.apply_delta("fame", -500) == -500

    def test_apply_huge_delta_saturates(self, variable_store):
        """An unbounded variable stops at the largest storable integer."""
        variable_store.define("population", "Population", 10)

        assert variable_store.apply_delta("population", 10 ** 30) == SQLITE_MAX_INT
        assert variable_store.apply_deltas({"population": -(10 ** 30)}) == {
            "population": SQLITE_MIN_INT - SQLITE_MAX_INT
        }
        assert variable_store.get("population").current_value == SQLITE_MIN_INT

    def test_apply_unknown_returns_none(self, variable_store):
        """Unknown ids are skipped and never created."""
        assert variable_store.apply_delta("nonexistent", 5) is None
        assert variable_store.get("nonexistent") is None

    def test_concurrent_deltas_not_lost(self, variable_store):
        """Parallel deltas to one variable all land."""
        variable_store.define("gold", "Gold", 0)

        def add_ones():
            for _ in range(10):
                variable_store.apply_delta("gold", 1)

        threads = [threading.Thread(target=add_ones) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert variable_store.get("gold").current_value == 40


class TestApplyDeltas:
    """Tests for batch updates."""

    def test_reports_applied_effects(self, variable_store):
        """The returned map holds post-clamp effects."""
        variable_store.define("militarism_level", "Militarism", 30, 0, 100)
        variable_store.define("treasury_level", "Treasury", 50, 0, 100)

        applied = variable_store.apply_deltas({
            "militarism_level": 90,
            "treasury_level": -10
        })

        assert applied == {"militarism_level": 70, "treasury_level": -10}
        assert variable_store.snapshot() == {"militarism_level": 100, "treasury_level": 40}

    def test_unknown_ids_left_out(self, variable_store):
        variable_store.define("gold", "Gold", 5)
        applied = variable_store.apply_deltas({"gold": 1, "dragons": 3})

        assert applied == {"gold": 1}
        assert variable_store.get("dragons") is None

    def test_saturated_change_recorded_as_zero(self, variable_store):
        """A delta that clamps away entirely is reported as a zero effect."""
        variable_store.define("gold", "Gold", 100, 0, 100)
        assert variable_store.apply_deltas({"gold": 10}) == {"gold": 0}

    def test_joins_outer_transaction(self, database, variable_store):
        """With a connection the batch rolls back with its caller."""
        variable_store.define("gold", "Gold", 5)

        with pytest.raises(RuntimeError):
            with database.transaction() as tx:
                variable_store.apply_deltas({"gold": 10}, conn=tx)
                raise RuntimeError("abort")

        assert variable_store.get("gold").current_value == 5


class TestInMemory:
    """The store also runs over an in-memory database."""

    def test_in_memory_database(self):
        db = Database(":memory:")
        db.ensure_schema()
        store = VariableStore(db)

        store.define("gold", "Gold", 1, 0, 3)
        assert store.apply_delta("gold", 5) == 3
        db.close()
