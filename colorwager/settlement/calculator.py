"""Pure payout calculation for settlement.

No DB access, no randomness, no clock: identical (bet, result) inputs always
yield identical (outcome, payout).
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

from colorwager.store.models import Bet, BetKind, Color, Outcome, RoundResult

COLOR_MULTIPLIER = Decimal("0.95")
PURPLE_RED_MULTIPLIER = Decimal("0.90")
NUMBER_MULTIPLIER = Decimal("9.0")

_CENT = Decimal("0.01")

# 管理者入力・表示用の固定マッピング (自動抽選では使わない)
_NUMBER_COLORS: dict[int, Color] = {
    0: Color.PURPLE_RED,
    1: Color.RED,
    2: Color.GREEN,
    3: Color.RED,
    4: Color.GREEN,
    5: Color.PURPLE_RED,
    6: Color.GREEN,
    7: Color.RED,
    8: Color.GREEN,
    9: Color.RED,
}


def color_for_number(number: int) -> Color:
    """Display color for a number: 1/3/7/9 red, 2/4/6/8 green, 0/5 purple-red."""
    if number not in _NUMBER_COLORS:
        raise ValueError(f"Number must be between 0 and 9, got {number}")
    return _NUMBER_COLORS[number]


def _quantize(amount: Decimal) -> Decimal:
    return amount.quantize(_CENT, rounding=ROUND_DOWN)


def settle(bet: Bet, result: RoundResult) -> tuple[Outcome, Decimal]:
    """Settle one bet against a round result.

    Color: win iff colors match; payout = stake × 0.90 on purple-red, else 0.95.
    Number: win iff numbers match and the number is not 0; payout = stake × 9.
    The returned payout is the win amount only; the stake is credited back
    separately on a win.
    """
    if bet.kind == BetKind.COLOR:
        if bet.value == result.color.value:
            mult = PURPLE_RED_MULTIPLIER if result.color == Color.PURPLE_RED else COLOR_MULTIPLIER
            return Outcome.WON, _quantize(bet.stake * mult)
    elif bet.kind == BetKind.NUMBER:
        # 0 は number bet では絶対に勝たない (0 に賭けても)
        if result.number != 0 and _as_number(bet.value) == result.number:
            return Outcome.WON, _quantize(bet.stake * NUMBER_MULTIPLIER)
    return Outcome.LOST, Decimal("0.00")


def potential_win(kind: BetKind, value: str, stake: Decimal) -> Decimal:
    """Win amount shown at placement time (assumes the bet wins).

    A purple-red color bet can only win against a purple-red result, so its
    multiplier is 0.90; other colors 0.95; numbers 9.0.
    """
    if kind == BetKind.COLOR:
        mult = PURPLE_RED_MULTIPLIER if value == Color.PURPLE_RED.value else COLOR_MULTIPLIER
    else:
        mult = NUMBER_MULTIPLIER
    return _quantize(Decimal(stake) * mult)


def _as_number(value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
