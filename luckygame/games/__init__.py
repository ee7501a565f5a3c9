from luckygame.games.boxes import (
    crack_egg,
    egg_state,
    open_box,
    recover_egg_energy,
    spin_wheel,
)
from luckygame.games.common import GameError, parse_bet, strict_int
from luckygame.games.mines import (
    apply_reveal,
    cash_out,
    place_bombs,
    reveal_cell,
    serialize_session,
    start_game,
)

__all__ = [
    "GameError",
    "apply_reveal",
    "cash_out",
    "crack_egg",
    "egg_state",
    "open_box",
    "parse_bet",
    "place_bombs",
    "recover_egg_energy",
    "reveal_cell",
    "serialize_session",
    "spin_wheel",
    "start_game",
    "strict_int",
]
