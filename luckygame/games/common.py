from __future__ import annotations

from typing import Iterable, Optional


class GameError(Exception):
    def __init__(self, code: str, **extra: object) -> None:
        super().__init__(code)
        self.code = code
        self.extra = extra


def strict_int(value: object) -> Optional[int]:
    """Whole number from JSON input, or ``None``. Booleans and fractions are refused."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        raw = value.strip()
        digits = raw[1:] if raw.startswith("-") else raw
        return int(raw) if digits.isdecimal() else None
    return None


def parse_bet(value: object, allowed: Iterable[int]) -> int:
    bet = strict_int(value)
    if bet is None or bet not in set(allowed):
        raise GameError("invalid_bet")
    return bet
