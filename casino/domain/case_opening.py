"""Case opening: tier by weighted draw, item uniformly within the tier."""

import math
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Dict, List

from uuid6 import uuid7

from casino.domain.outcomes import RandomOutcomeProvider
from casino.errors import CaseNotFound, ValidationError
from casino.models.dc_models import PredeterminedWinnerModel
from casino.models.schema_models import CaseDrawSchema, CaseItemSchema, CaseTypeSchema


def item_value(case: CaseTypeSchema, item: CaseItemSchema) -> int:
    multiplier = Decimal(str(case.value_multipliers.get(item.rarity, 1.0)))
    return int((Decimal(item.base_value) * multiplier).to_integral_value(rounding=ROUND_FLOOR))


def validate_case(case: CaseTypeSchema) -> None:
    """Raise ValueError if the definition cannot be drawn from fairly."""
    total = sum(case.rarity_distribution.values())
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        raise ValueError(f"rarity weights of {case.id} sum to {total}, expected 1.0")
    if any(weight < 0 for weight in case.rarity_distribution.values()):
        raise ValueError(f"negative rarity weight in {case.id}")
    if case.price <= 0:
        raise ValueError(f"price of {case.id} must be positive")
    for rarity, weight in case.rarity_distribution.items():
        if weight > 0 and not any(item.rarity == rarity for item in case.items):
            raise ValueError(f"{case.id} has weight for {rarity} but no items of that rarity")


class CaseOpeningResolver:
    def __init__(self, cases: List[CaseTypeSchema], random_provider: RandomOutcomeProvider):
        for case in cases:
            validate_case(case)
        self.cases: Dict[str, CaseTypeSchema] = {case.id: case for case in cases}
        self.random_provider = random_provider

    def get_case(self, case_type_id: str) -> CaseTypeSchema:
        case = self.cases.get(case_type_id)
        if case is None:
            raise CaseNotFound(f"Case type {case_type_id} not found")
        return case

    def list_cases(self) -> List[CaseTypeSchema]:
        return sorted(self.cases.values(), key=lambda case: case.price)

    def draw_rarity(self, case: CaseTypeSchema) -> str:
        return self.random_provider.weighted_choice(case.rarity_distribution)

    def draw(self, case_type_id: str, now: datetime) -> CaseDrawSchema:
        case = self.get_case(case_type_id)
        rarity = self.draw_rarity(case)
        tier = [item for item in case.items if item.rarity == rarity]
        item = self.random_provider.uniform_choice(tier)
        return CaseDrawSchema(
            opening_id=str(uuid7()),
            case_type_id=case.id,
            item=item,
            currency_awarded=item_value(case, item),
            timestamp=now,
        )

    def validate_replay(
        self, case_type_id: str, winner: PredeterminedWinnerModel, now: datetime
    ) -> CaseDrawSchema:
        """Rebuild a replayed outcome from server-held definitions.

        Only ids are taken from the payload; every amount is recomputed and
        compared.

        Raises:
            ValidationError: the payload does not match the catalog
        """
        case = self.get_case(case_type_id)
        if winner.case_type.id != case.id:
            raise ValidationError("Replayed outcome belongs to a different case")
        if winner.case_type.price != case.price:
            raise ValidationError("Replayed case price does not match")
        item = next((item for item in case.items if item.id == winner.item_won.id), None)
        if item is None:
            raise ValidationError("Replayed item is not part of this case")
        awarded = item_value(case, item)
        if winner.currency_awarded != awarded:
            raise ValidationError("Replayed award does not match the item value")
        return CaseDrawSchema(
            opening_id=winner.opening_id,
            case_type_id=case.id,
            item=item,
            currency_awarded=awarded,
            timestamp=now,
        )
