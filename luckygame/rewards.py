from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from config import (
    BATTLE_LOSER_REWARD,
    BATTLE_WINNER_REWARD,
)
from luckygame.draws import reward_for_matches

__all__ = [
    "BOX_OUTCOMES",
    "EGG_TIERS",
    "MINES_GRID_SIZE",
    "MINES_MULTIPLIERS",
    "WHEEL_SEGMENTS",
    "battle_reward",
    "box_win_amount",
    "mines_cashout_amount",
    "mines_multiplier",
    "pick_box_outcome",
    "pick_egg_reward",
    "pick_mines_bomb_count",
    "pick_wheel_segment",
    "reward_for_matches",
]

WHEEL_SEGMENTS: Tuple[int, ...] = (10, 5, 30, 10, 5, 30, 10, 5)


@dataclass(frozen=True)
class EggTier:
    min_reward: int
    max_reward: int
    weight: int


EGG_TIERS: Tuple[EggTier, ...] = (
    EggTier(1, 5, 40),
    EggTier(5, 15, 30),
    EggTier(15, 30, 20),
    EggTier(30, 100, 8),
    EggTier(100, 500, 2),
)
EGG_FALLBACK_REWARD = 1

MINES_GRID_SIZE = 16
MINES_BOMB_WEIGHTS: Dict[int, float] = {3: 0.15, 4: 0.35, 5: 0.50}
MINES_MULTIPLIERS: Dict[int, Tuple[float, ...]] = {
    3: (1.0, 1.1, 1.25, 1.4, 1.6, 1.85, 2.1, 2.4, 2.8, 3.2, 3.8, 4.5),
    4: (1.0, 1.15, 1.3, 1.5, 1.75, 2.05, 2.4, 2.8, 3.3, 3.9, 4.6, 5.5),
    5: (1.0, 1.2, 1.4, 1.65, 1.95, 2.3, 2.75, 3.3, 4.0, 4.8, 5.8, 7.0),
    6: (1.0, 1.25, 1.55, 1.9, 2.3, 2.8, 3.4, 4.2, 5.2, 6.4, 8.0),
}


@dataclass(frozen=True)
class BoxOutcome:
    threshold: float
    multiplier: float
    name: str


# Cumulative thresholds over random() in [0, 1).
BOX_OUTCOMES: Tuple[BoxOutcome, ...] = (
    BoxOutcome(0.45, 0.0, "empty"),
    BoxOutcome(0.70, 0.2, "little"),
    BoxOutcome(0.85, 0.5, "average"),
    BoxOutcome(0.93, 1.2, "good"),
    BoxOutcome(0.97, 1.5, "great"),
    BoxOutcome(0.99, 2.0, "rare"),
    BoxOutcome(1.00, 3.0, "jackpot"),
)


def pick_wheel_segment(rng: Optional[random.Random] = None) -> Tuple[int, int]:
    index = (rng or random).randrange(len(WHEEL_SEGMENTS))
    return index, WHEEL_SEGMENTS[index]


def pick_egg_reward(rng: Optional[random.Random] = None) -> int:
    source = rng or random
    total = sum(tier.weight for tier in EGG_TIERS)
    roll = source.random() * total
    for tier in EGG_TIERS:
        roll -= tier.weight
        if roll <= 0:
            return source.randint(tier.min_reward, tier.max_reward)
    return EGG_FALLBACK_REWARD


def pick_mines_bomb_count(rng: Optional[random.Random] = None) -> int:
    roll = (rng or random).random()
    cumulative = 0.0
    last = 0
    for bombs, weight in MINES_BOMB_WEIGHTS.items():
        cumulative += weight
        last = bombs
        if roll < cumulative:
            return bombs
    return last


def mines_multiplier(bombs: int, cells_revealed: int) -> float:
    table = MINES_MULTIPLIERS.get(int(bombs))
    if table is None:
        raise ValueError(f"unsupported bomb count: {bombs}")
    index = min(max(0, int(cells_revealed)), len(table) - 1)
    return table[index]


def mines_cashout_amount(bet: int, bombs: int, cells_revealed: int) -> int:
    return math.floor(int(bet) * mines_multiplier(bombs, cells_revealed))


def pick_box_outcome(rng: Optional[random.Random] = None) -> BoxOutcome:
    roll = (rng or random).random()
    for outcome in BOX_OUTCOMES:
        if roll < outcome.threshold:
            return outcome
    return BOX_OUTCOMES[-1]


def box_win_amount(bet: int, outcome: BoxOutcome) -> int:
    return math.floor(int(bet) * outcome.multiplier)


def battle_reward(is_winner: bool) -> int:
    return BATTLE_WINNER_REWARD if is_winner else BATTLE_LOSER_REWARD
