from __future__ import annotations

import pytest

from abrpbridge.rate_limit import RateGate


def test_first_call_always_permitted() -> None:
    assert RateGate(3600).permit(0) is True


def test_interval_ten_seconds() -> None:
    gate = RateGate(10)

    assert [gate.permit(t) for t in (100, 105, 109, 110)] == [True, False, False, True]
    assert gate.last_permitted == 110


def test_blocked_calls_do_not_move_the_window() -> None:
    gate = RateGate(5)

    assert [gate.permit(t) for t in (1, 4, 6, 7, 11)] == [True, False, True, False, True]


def test_zero_interval_permits_everything() -> None:
    gate = RateGate(0)
    assert all(gate.permit(t) for t in (5, 5, 5))


def test_negative_interval_rejected() -> None:
    with pytest.raises(ValueError):
        RateGate(-1)
