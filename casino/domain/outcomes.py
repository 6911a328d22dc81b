"""Random Outcome Provider.

All game randomness flows through one provider backed by the operating
system's CSPRNG. Tests swap in a provider built on a seeded or scripted
``random.Random``.
"""

import random
import secrets
from typing import List, Mapping, Sequence, TypeVar

from casino.models.schema_models import CardSchema

T = TypeVar("T")

SUITS = ("hearts", "diamonds", "clubs", "spades")
RANKS = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")
ROULETTE_SLOTS = 37  # European wheel, single zero


def fresh_deck() -> List[CardSchema]:
    return [CardSchema(rank=rank, suit=suit) for suit in SUITS for rank in RANKS]


class RandomOutcomeProvider:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or secrets.SystemRandom()

    def roulette_number(self) -> int:
        return self.rng.randrange(ROULETTE_SLOTS)

    def weighted_choice(self, weights: Mapping[str, float]) -> str:
        """Pick a key with probability proportional to its weight."""
        keys = [key for key, weight in weights.items() if weight > 0]
        if not keys:
            raise ValueError("weights must contain at least one positive entry")
        total = sum(weights[key] for key in keys)
        target = self.rng.random() * total
        cumulative = 0.0
        for key in keys:
            cumulative += weights[key]
            if target < cumulative:
                return key
        # float rounding can leave target == total
        return keys[-1]

    def uniform_choice(self, options: Sequence[T]) -> T:
        if not options:
            raise ValueError("cannot choose from an empty sequence")
        return options[self.rng.randrange(len(options))]

    def shuffled_deck(self) -> List[CardSchema]:
        """A freshly shuffled 52-card deck; cards are drawn from the end."""
        deck = fresh_deck()
        # Fisher-Yates
        for i in range(len(deck) - 1, 0, -1):
            j = self.rng.randrange(i + 1)
            deck[i], deck[j] = deck[j], deck[i]
        return deck

