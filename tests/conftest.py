from __future__ import annotations

import pytest

from builders import make_frame


@pytest.fixture
def frame() -> str:
    return make_frame(7)
