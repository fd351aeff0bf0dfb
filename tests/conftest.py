from __future__ import annotations

import pytest

from helpers import HEADER


@pytest.fixture()
def sample_rows() -> list:
    return [
        HEADER,
        ["https://t.me/c/0", 10, 1, 0.1],
        ["07.07 - 13.07"],
        ["https://t.me/c/1", 100, 10, 0.1],
        ["https://t.me/c/2", 200, 30, 0.15],
        [None, None, None, None],
        ["14.07 - 20.07"],
        ["https://t.me/c/3", 300, 15, 0.05],
    ]
