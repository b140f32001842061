"""Tests for level quantization and the waveform history."""

from __future__ import annotations

import pytest

from level_meter import CEILING_DB, FLOOR_DB, LEVEL_SYMBOLS, LevelHistory, quantize


@pytest.mark.parametrize("db", [-45.0, -60.0, -120.0, float("-inf")])
def test_at_or_below_floor_is_quietest(db: float) -> None:
    assert quantize(db) == LEVEL_SYMBOLS[0]


@pytest.mark.parametrize("db", [-18.0, -10.0, 0.0, 12.0, float("inf")])
def test_at_or_above_ceiling_is_loudest(db: float) -> None:
    assert quantize(db) == LEVEL_SYMBOLS[-1]


def test_nan_counts_as_silence() -> None:
    assert quantize(float("nan")) == LEVEL_SYMBOLS[0]


def test_mapping_is_monotonic() -> None:
    readings = [FLOOR_DB - 5 + step * 0.25 for step in range(160)]
    indexes = [LEVEL_SYMBOLS.index(quantize(db)) for db in readings]
    assert indexes == sorted(indexes)
    assert set(indexes) == set(range(len(LEVEL_SYMBOLS)))


def test_bucket_boundaries() -> None:
    span = CEILING_DB - FLOOR_DB
    # Midpoint of the range lands in the middle bucket
    assert quantize(FLOOR_DB + span / 2) == LEVEL_SYMBOLS[3]
    assert quantize(FLOOR_DB + span / 6 - 0.01) == LEVEL_SYMBOLS[0]
    assert quantize(FLOOR_DB + span / 6 + 0.01) == LEVEL_SYMBOLS[1]


# ---------------------------------------------------------------
# LevelHistory
# ---------------------------------------------------------------

def test_history_keeps_constant_width_and_evicts_oldest() -> None:
    history = LevelHistory(width=4)
    assert history.render() == "    "

    for db in (-60.0, -60.0, -18.0, -18.0, -18.0):
        history.push(db)

    assert len(history) == 4
    assert history.render() == "·███"


def test_history_rejects_zero_width() -> None:
    with pytest.raises(ValueError):
        LevelHistory(width=0)
