from __future__ import annotations

import pytest

from ._doubles import RecordingStore


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()
