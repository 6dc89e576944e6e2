from __future__ import annotations

from tabletx.batch.result import TransactionResult


def test_merge_sums_counts_and_concatenates_lists() -> None:
    """Test that merge sums counts and concatenates lists."""
    a = TransactionResult(total_entities=3, passed=2, failed=1, messages=["m1"], failed_entities=["x"])
    b = TransactionResult(total_entities=2, passed=1, failed=1, messages=["m2"], failed_entities=["y"])

    merged = a.merge(b)

    assert merged.total_entities == 5
    assert merged.passed == 3
    assert merged.failed == 2
    assert merged.messages == ["m1", "m2"]
    assert merged.failed_entities == ["x", "y"]
    assert merged.is_complete
    assert not merged.succeeded


def test_merge_does_not_modify_operands() -> None:
    """Test that merge returns a new result and leaves operands alone."""
    a = TransactionResult(total_entities=1, failed=1, messages=["m"], failed_entities=["x"])
    b = TransactionResult(total_entities=1, passed=1)

    a.merge(b)

    assert a.messages == ["m"]
    assert a.failed_entities == ["x"]
    assert b.messages == []


def test_cancelled_propagates_through_merge() -> None:
    """Test that a cancelled operand makes the merged result cancelled."""
    merged = TransactionResult().merge(TransactionResult(cancelled=True))
    assert merged.cancelled is True


def test_map_failed_converts_failed_entities_only() -> None:
    """Test that map_failed converts failed entities and keeps counts."""
    result = TransactionResult(total_entities=2, passed=1, failed=1, failed_entities=[{"RowKey": "r"}])

    mapped = result.map_failed(lambda row: row["RowKey"].upper())

    assert mapped.failed_entities == ["R"]
    assert mapped.passed == 1
    assert result.failed_entities == [{"RowKey": "r"}]


def test_empty_result_is_a_success() -> None:
    """Test that an empty result counts as complete and successful."""
    result = TransactionResult()
    assert result.succeeded
    assert result.as_dict()["total_entities"] == 0
