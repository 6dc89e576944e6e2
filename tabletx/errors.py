from __future__ import annotations

from typing import Optional


class TabletxError(Exception):
    """Base exception for tabletx errors."""


class BatchRejectedError(TabletxError):
    """
    The store refused a batch.

    Stores apply batch items in order and stop at the first one that fails.
    ``failed_index`` identifies that item within the submitted batch when the
    store can tell; it is None when the batch was refused as a whole.
    """

    def __init__(
        self,
        message: str,
        failed_index: Optional[int] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.failed_index = failed_index
        self.status = status


class SerializationError(TabletxError):
    """An object could not be converted into a row entity."""


class TableStoreError(TabletxError):
    """Table-level store failure (create, drop, existence checks)."""


class TableClearTimeoutError(TableStoreError):
    """A dropped table did not disappear within the configured number of polls."""
