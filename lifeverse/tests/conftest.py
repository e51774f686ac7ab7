"""Shared fixtures for the lifeverse test suite."""

from __future__ import annotations

import math
from typing import List

import pytest

from lifeverse.checkins import DAY_MS, CheckinRecord
from lifeverse.config import Impulse, MultiverseConfig, Toggles

BASE_TS = 1_700_000_000_000


def energy_drives_focus(days: int = 90) -> List[CheckinRecord]:
    """Energy oscillates; focus tomorrow follows energy today."""
    records = []
    focus = 4.0
    previous_energy = 5.0
    for day in range(days):
        energy = 5.0 + math.sin(day / 5.0)
        if day > 0:
            focus = 0.5 * focus + 0.4 * previous_energy
        records.append(CheckinRecord(ts=BASE_TS + day * DAY_MS, values={"energy": energy, "focus": focus}))
        previous_energy = energy
    return records


@pytest.fixture
def synthetic_checkins() -> List[CheckinRecord]:
    return energy_drives_focus(90)


@pytest.fixture
def make_history():
    return energy_drives_focus


@pytest.fixture
def deterministic_config() -> MultiverseConfig:
    return MultiverseConfig(
        runs=1000,
        horizon_days=7,
        seed=7,
        shock_mode="off",
        toggles=Toggles(weights_noise=False, forecast_noise=False, stochastic_regime=False),
        matrix={"energy": {"focus": 0.6, "mood": 0.3}, "stress": {"sleepHours": -0.4}},
        impulses=[Impulse(0, "energy", 2.0), Impulse(3, "stress", 1.0)],
    )


@pytest.fixture
def stormy_config() -> MultiverseConfig:
    return MultiverseConfig(
        runs=200,
        horizon_days=10,
        seed=1234,
        base_vector={"energy": 9.5, "stress": 1.0, "sleepHours": 11.5},
        base_regime=3,
        matrix={
            "energy": {"focus": 1.0, "mood": 1.0, "stress": -1.0},
            "stress": {"sleepHours": -1.0, "energy": -1.0, "health": -1.0},
            "sleepHours": {"energy": 1.0},
        },
        stability={"energy": {"focus": 0.1}},
        shock_mode="blackSwan",
        forecast_residuals=[-40.0, -5.0, 0.0, 5.0, 40.0],
        goal_weights={"energy": 1.0, "stress": -1.0},
        impulses=[Impulse(1, "stress", 9.0), Impulse(2, "energy", -9.0), Impulse(4, "sleepHours", 6.0)],
    )
