"""Cumulative Tracker tests (pure fold over records)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from carbon_kernel.domain.cumulative import (
    EMPTY_STATE,
    CumulativeState,
    FieldTally,
    apply,
    fold,
    order_batch,
)
from carbon_kernel.exceptions import DuplicateTimestampError, OutOfOrderRecordError

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _at(hours: int) -> datetime:
    return T0 + timedelta(hours=hours)


class TestApply:
    def test_first_record_seeds_high_and_low(self):
        state = apply(EMPTY_STATE, uuid4(), _at(0), {"fuelConsumption": Decimal("5")})
        tally = state.fields["fuelConsumption"]

        assert tally == FieldTally(Decimal("5"), Decimal("5"), Decimal("5"), Decimal("5"))
        assert state.entry_count == 1
        assert state.watermark == _at(0)

    def test_running_totals(self):
        state = EMPTY_STATE
        for hour, value in enumerate(["10", "4", "7"]):
            state = apply(state, uuid4(), _at(hour), {"x": Decimal(value)})
        tally = state.fields["x"]

        assert tally.total == Decimal("21")
        assert tally.high == Decimal("10")
        assert tally.low == Decimal("4")
        assert tally.last == Decimal("7")
        assert state.entry_count == 3

    def test_absent_field_keeps_its_tally(self):
        state = apply(EMPTY_STATE, uuid4(), _at(0), {"a": Decimal("1"), "b": Decimal("2")})
        state = apply(state, uuid4(), _at(1), {"a": Decimal("3")})

        assert state.fields["b"].last == Decimal("2")
        assert state.fields["a"].total == Decimal("4")

    def test_negative_first_value_is_the_low(self):
        state = apply(EMPTY_STATE, uuid4(), _at(0), {"x": Decimal("-2")})
        state = apply(state, uuid4(), _at(1), {"x": Decimal("3")})
        assert state.fields["x"].low == Decimal("-2")

    def test_equal_timestamp_accepted(self):
        state = apply(EMPTY_STATE, uuid4(), _at(0), {"x": Decimal("1")})
        state = apply(state, uuid4(), _at(0), {"x": Decimal("1")})
        assert state.entry_count == 2

    def test_older_record_rejected(self):
        state = apply(EMPTY_STATE, uuid4(), _at(5), {"x": Decimal("1")})
        with pytest.raises(OutOfOrderRecordError) as exc_info:
            apply(state, uuid4(), _at(1), {"x": Decimal("1")})
        assert exc_info.value.code == "OUT_OF_ORDER_RECORD"

    def test_last_record_id_tracks_newest(self):
        newest = uuid4()
        state = apply(EMPTY_STATE, uuid4(), _at(0), {})
        state = apply(state, newest, _at(1), {})
        assert state.last_record_id == newest

    def test_snapshot_shape(self):
        state = apply(EMPTY_STATE, uuid4(), _at(0), {"x": Decimal("1.5")})
        snap = state.snapshot()
        assert snap["fields"]["x"] == {"total": "1.5", "high": "1.5", "low": "1.5", "last": "1.5"}
        assert snap["entry_count"] == 1
        assert snap["watermark"] == _at(0).isoformat()


values_strategy = st.decimals(min_value=-1000, max_value=1000, places=3, allow_nan=False, allow_infinity=False)


class TestFold:
    @given(values=st.lists(values_strategy, min_size=1, max_size=20), data=st.data())
    @settings(max_examples=100)
    def test_order_independent(self, values, data):
        records = [(uuid4(), _at(i), {"x": v}) for i, v in enumerate(values)]
        shuffled = data.draw(st.permutations(records))

        assert fold(shuffled) == fold(records)

    @given(values=st.lists(values_strategy, min_size=1, max_size=20))
    @settings(max_examples=100)
    def test_matches_plain_aggregates(self, values):
        state = fold((uuid4(), _at(i), {"x": v}) for i, v in enumerate(values))
        tally = state.fields["x"]

        assert tally.total == sum(values, Decimal("0"))
        assert tally.high == max(values)
        assert tally.low == min(values)
        assert tally.last == values[-1]
        assert state.entry_count == len(values)

    def test_empty_fold(self):
        assert fold([]) == CumulativeState()


class TestOrderBatch:
    def test_sorted_ascending(self):
        batch = order_batch([(0, _at(2), "b"), (1, _at(1), "a"), (2, _at(3), "c")])
        assert [item for _, _, item in batch.ordered] == ["a", "b", "c"]
        assert batch.rejected == []

    def test_all_duplicates_rejected(self):
        batch = order_batch([(0, _at(1), "a"), (1, _at(2), "b"), (2, _at(1), "c")])

        assert [index for index, _, _ in batch.ordered] == [1]
        rejected = dict(batch.rejected)
        assert set(rejected) == {0, 2}
        assert isinstance(rejected[0], DuplicateTimestampError)
        assert rejected[0].indexes == [0, 2]
