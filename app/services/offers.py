"""
Paid offers catalogue
"""
from dataclasses import dataclass
from typing import Dict

from app.core.exceptions import ValidationError


@dataclass(frozen=True)
class Offer:
    tier: str
    amount: int  # cents
    name: str

    @property
    def amount_euros(self) -> str:
        return f"{self.amount / 100:.2f}"


OFFERS: Dict[str, Offer] = {
    "classique": Offer("classique", 2900, "Analyse Express"),
    "premium": Offer("premium", 4900, "Analyse Premium validée avocat"),
}


def get_offer(tier: str) -> Offer:
    try:
        return OFFERS[tier]
    except KeyError:
        raise ValidationError(f"Type d'expertise invalide: {tier}") from None
