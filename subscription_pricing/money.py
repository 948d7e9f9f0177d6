"""
Arithmétique monétaire à virgule fixe.

Tous les prix du moteur sont des `Decimal` arrondis à l'unité mineure
(centimes). Les facteurs (élasticité, pondérations) restent des float et
ne sont convertis qu'au moment de multiplier un prix.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from .exceptions import ValidationError

MINOR_UNIT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Any) -> Decimal:
    """
    Convertit une valeur en montant monétaire arrondi au centime.

    Les float passent par `str()` pour éviter d'importer leur erreur
    de représentation binaire (0.1 -> 0.1000000000000000055...).
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        try:
            amount = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValidationError(f"Montant invalide: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Montant invalide: {value!r}")
    return amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def scale_money(amount: Decimal, factor: float) -> Decimal:
    """Multiplie un montant par un facteur flottant et arrondit au centime."""
    return to_money(amount * Decimal(str(factor)))


def require_positive(amount: Decimal, label: str = "prix") -> Decimal:
    if amount <= 0:
        raise ValidationError(f"Le {label} doit être strictement positif (reçu {amount})")
    return amount
