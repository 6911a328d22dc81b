"""European roulette: bet validation, win predicates and payouts.

Resolution is a pure function of (bet, drawn number); the drawn number comes
from the RandomOutcomeProvider.
"""

from dataclasses import dataclass
from typing import Dict, List, Union

from casino.domain.outcomes import ROULETTE_SLOTS, RandomOutcomeProvider
from casino.errors import ValidationError

RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})
BLACK_NUMBERS = frozenset({2, 4, 6, 8, 10, 11, 13, 15, 17, 20, 22, 24, 26, 28, 29, 31, 33, 35})

# Payout "to one", the stake is returned on top.
MULTIPLIERS = {
    "number": 35,
    "red": 1,
    "black": 1,
    "odd": 1,
    "even": 1,
    "low": 1,
    "high": 1,
    "dozen": 2,
    "column": 2,
}

EVEN_MONEY_TYPES = ("red", "black", "odd", "even", "low", "high")

# Grouped bet types; the value names the concrete side.
GROUPED_TYPES = {
    "color": ("red", "black"),
    "parity": ("odd", "even"),
    "range": ("low", "high"),
}


@dataclass(frozen=True)
class RouletteBet:
    bet_type: str
    bet_value: Union[int, str]
    amount: int


@dataclass(frozen=True)
class RouletteOutcome:
    bet: RouletteBet
    winning_number: int
    won: bool
    multiplier: int
    win_amount: int

    def result_data(self) -> dict:
        return {
            "bet_type": self.bet.bet_type,
            "bet_value": self.bet.bet_value,
            "winning_number": self.winning_number,
            "winning_color": number_color(self.winning_number),
            "won": self.won,
            "multiplier": self.multiplier,
        }


def number_color(number: int) -> str:
    if number == 0:
        return "green"
    return "red" if number in RED_NUMBERS else "black"


def _as_int(value, bet_type: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid bet value for {bet_type}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"Invalid bet value for {bet_type}")


def normalize_bet(bet_type: str, bet_value, amount: int) -> RouletteBet:
    """Validate a raw bet against the type-specific domain.

    Raises:
        ValidationError: unknown type or value out of range
    """
    bet_type = (bet_type or "").strip().lower()

    if bet_type in GROUPED_TYPES:
        side = str(bet_value).strip().lower() if bet_value is not None else ""
        if side not in GROUPED_TYPES[bet_type]:
            raise ValidationError(
                f"{bet_type} bets take one of {', '.join(GROUPED_TYPES[bet_type])}"
            )
        return RouletteBet(bet_type=side, bet_value=side, amount=amount)

    if bet_type in EVEN_MONEY_TYPES:
        if bet_value is not None and str(bet_value).strip().lower() != bet_type:
            raise ValidationError(f"Bet value for {bet_type} must be '{bet_type}'")
        return RouletteBet(bet_type=bet_type, bet_value=bet_type, amount=amount)

    if bet_type == "number":
        number = _as_int(bet_value, bet_type)
        if not 0 <= number < ROULETTE_SLOTS:
            raise ValidationError("Number bets must be between 0 and 36")
        return RouletteBet(bet_type=bet_type, bet_value=number, amount=amount)

    if bet_type in ("dozen", "column"):
        group = _as_int(bet_value, bet_type)
        if group not in (1, 2, 3):
            raise ValidationError(f"{bet_type} bets must be 1, 2 or 3")
        return RouletteBet(bet_type=bet_type, bet_value=group, amount=amount)

    raise ValidationError(f"Unknown bet type: {bet_type or '<empty>'}")


def is_winning_bet(bet: RouletteBet, number: int) -> bool:
    if bet.bet_type == "number":
        return bet.bet_value == number
    # zero loses every outside bet
    if number == 0:
        return False
    if bet.bet_type == "red":
        return number in RED_NUMBERS
    if bet.bet_type == "black":
        return number in BLACK_NUMBERS
    if bet.bet_type == "odd":
        return number % 2 == 1
    if bet.bet_type == "even":
        return number % 2 == 0
    if bet.bet_type == "low":
        return 1 <= number <= 18
    if bet.bet_type == "high":
        return 19 <= number <= 36
    if bet.bet_type == "dozen":
        return (number - 1) // 12 + 1 == bet.bet_value
    if bet.bet_type == "column":
        return (number - bet.bet_value) % 3 == 0
    return False


def resolve(bet: RouletteBet, number: int) -> RouletteOutcome:
    if not 0 <= number < ROULETTE_SLOTS:
        raise ValueError(f"roulette number out of range: {number}")
    won = is_winning_bet(bet, number)
    multiplier = MULTIPLIERS[bet.bet_type] if won else 0
    win_amount = bet.amount * (multiplier + 1) if won else 0
    return RouletteOutcome(
        bet=bet,
        winning_number=number,
        won=won,
        multiplier=multiplier,
        win_amount=win_amount,
    )


class RouletteResolver:
    def __init__(self, random_provider: RandomOutcomeProvider):
        self.random_provider = random_provider

    def resolve(self, bet: RouletteBet) -> RouletteOutcome:
        return resolve(bet, self.random_provider.roulette_number())

    @staticmethod
    def bet_types() -> Dict[str, Dict[str, str]]:
        return {
            "number": {"description": "A single number (0-36)", "payout": "35:1"},
            "red": {"description": "Any red number", "payout": "1:1"},
            "black": {"description": "Any black number", "payout": "1:1"},
            "odd": {"description": "Odd numbers (1-35)", "payout": "1:1"},
            "even": {"description": "Even numbers (2-36)", "payout": "1:1"},
            "low": {"description": "Numbers 1-18", "payout": "1:1"},
            "high": {"description": "Numbers 19-36", "payout": "1:1"},
            "dozen": {"description": "1st (1-12), 2nd (13-24) or 3rd (25-36) dozen", "payout": "2:1"},
            "column": {"description": "1st, 2nd or 3rd column", "payout": "2:1"},
        }

    @staticmethod
    def wheel_layout() -> List[Dict[str, Union[int, str]]]:
        return [{"number": n, "color": number_color(n)} for n in range(ROULETTE_SLOTS)]
