"""Server-held case definitions.

Rarity distributions are probabilities per tier (each case sums to 1.0).
The awarded currency is ``floor(base_value * value_multipliers[rarity])``.
"""

import re
from typing import Dict, List

from casino.models.schema_models import CaseItemSchema, CaseTypeSchema

RARITIES = ("common", "uncommon", "rare", "epic", "legendary")

# (name, rarity, base_value, category)
_ITEMS = [
    ("Bandage", "common", 50, "medical"),
    ("Painkillers", "common", 75, "medical"),
    ("AI-2 Medkit", "common", 100, "medical"),
    ("Crackers", "common", 30, "consumables"),
    ("Bolts", "common", 20, "valuables"),
    ("Factory Exit Key", "common", 100, "keycards"),
    ("Salewa First Aid Kit", "uncommon", 200, "medical"),
    ("CPU Fan", "uncommon", 150, "electronics"),
    ("MRE (Meal Ready to Eat)", "uncommon", 150, "consumables"),
    ("Gold Chain", "uncommon", 200, "valuables"),
    ("Dorm Room 114 Key", "uncommon", 300, "keycards"),
    ("IFAK Personal Tactical First Aid Kit", "rare", 500, "medical"),
    ("Graphics Card", "rare", 600, "electronics"),
    ("Whiskey", "rare", 350, "consumables"),
    ("Rolex", "rare", 800, "valuables"),
    ("Checkpoint Key", "rare", 900, "keycards"),
    ("Surv12 Field Surgical Kit", "epic", 1500, "medical"),
    ("Tetriz Portable Game", "epic", 1500, "electronics"),
    ("Golden Rooster", "epic", 2000, "valuables"),
    ("Red Keycard", "epic", 3000, "keycards"),
    ("LEDX Skin Transilluminator", "legendary", 5000, "medical"),
    ("GPU (Graphics Processing Unit)", "legendary", 8000, "electronics"),
    ("Bitcoin", "legendary", 12000, "valuables"),
    ("Labs Access Keycard", "legendary", 8000, "keycards"),
]


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


ITEMS: List[CaseItemSchema] = [
    CaseItemSchema(id=_slug(name), name=name, rarity=rarity, base_value=base_value, category=category)
    for name, rarity, base_value, category in _ITEMS
]


DEFAULT_CASES: List[CaseTypeSchema] = [
    CaseTypeSchema(
        id="scav-case",
        name="Scav Case",
        price=500,
        description="Basic case containing common items found by Scavengers.",
        rarity_distribution={"common": 0.60, "uncommon": 0.25, "rare": 0.10, "epic": 0.04, "legendary": 0.01},
        value_multipliers={"common": 1.0, "uncommon": 1.2, "rare": 1.5, "epic": 2.0, "legendary": 3.0},
        items=ITEMS,
    ),
    CaseTypeSchema(
        id="pmc-case",
        name="PMC Case",
        price=1500,
        description="Military-grade case with better odds for valuable items.",
        rarity_distribution={"common": 0.45, "uncommon": 0.30, "rare": 0.15, "epic": 0.08, "legendary": 0.02},
        value_multipliers={"common": 1.2, "uncommon": 1.5, "rare": 2.0, "epic": 2.5, "legendary": 4.0},
        items=ITEMS,
    ),
    CaseTypeSchema(
        id="labs-case",
        name="Labs Case",
        price=5000,
        description="Premium case from TerraGroup Labs with the best legendary odds.",
        rarity_distribution={"common": 0.30, "uncommon": 0.35, "rare": 0.20, "epic": 0.12, "legendary": 0.03},
        value_multipliers={"common": 1.5, "uncommon": 2.0, "rare": 3.0, "epic": 4.0, "legendary": 6.0},
        items=ITEMS,
    ),
]


def catalog_by_id(cases: List[CaseTypeSchema] = DEFAULT_CASES) -> Dict[str, CaseTypeSchema]:
    return {case.id: case for case in cases}
