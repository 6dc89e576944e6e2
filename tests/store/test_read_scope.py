from __future__ import annotations

import pytest

from tabletx.store.base import ReadScope


@pytest.mark.parametrize(
    "scope, expected",
    [
        (ReadScope("X"), "PartitionKey eq 'X' and IsDeleted ne true"),
        (ReadScope("X", include_soft_deleted=True), "PartitionKey eq 'X'"),
        (ReadScope("X", "7"), "PartitionKey eq 'X' and RowKey eq '7' and IsDeleted ne true"),
        (ReadScope(filter=" amount gt 3 "), "amount gt 3 and IsDeleted ne true"),
        (ReadScope(filter="   ", include_soft_deleted=True), ""),
        (ReadScope(), "IsDeleted ne true"),
    ],
)
def test_filter_expression(scope: ReadScope, expected: str) -> None:
    """Test that scopes render their filter text in a fixed clause order."""
    assert scope.filter_expression == expected


def test_quotes_in_keys_are_doubled() -> None:
    """Test that single quotes inside keys are doubled."""
    assert ReadScope("O'Brien", include_soft_deleted=True).filter_expression == "PartitionKey eq 'O''Brien'"


def test_scope_is_immutable() -> None:
    """Test that ReadScope cannot be modified."""
    scope = ReadScope("X")
    with pytest.raises(AttributeError):
        scope.partition_key = "Y"
