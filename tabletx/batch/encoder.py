from __future__ import annotations

from .models import BatchAction, DeleteMode, OperationKind, RowEntity


def sanitize_delete_mode(kind: OperationKind, delete_mode: DeleteMode) -> DeleteMode:
    """
    Only a DELETE carries a delete mode; a DELETE without one deletes for real.
    """
    if kind != OperationKind.DELETE:
        return DeleteMode.NOT_APPLICABLE
    if delete_mode == DeleteMode.NOT_APPLICABLE:
        return DeleteMode.HARD
    return delete_mode


def encode_operation(
    kind: OperationKind,
    delete_mode: DeleteMode,
    entity: RowEntity,
) -> BatchAction:
    """
    Map a logical operation onto the action the store executes.

    A soft delete never removes the row. It becomes a merge that sets the
    deleted flag, and the flag is set on ``entity`` in place.
    """
    delete_mode = sanitize_delete_mode(kind, delete_mode)

    if delete_mode == DeleteMode.SOFT:
        entity.is_deleted = True
        return BatchAction(OperationKind.UPDATE_MERGE, entity)

    return BatchAction(kind, entity)
