"""
Exceptions du moteur de pricing.

Les données insuffisantes ne sont PAS des erreurs : elles sont signalées
par des résultats explicites (None, `sufficient_data=False`).
"""


class PricingError(Exception):
    """Erreur de base du moteur de pricing."""


class NotFoundError(PricingError):
    """Entité (plan, test, variante) introuvable."""

    def __init__(self, entity: str, identifier: str) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} introuvable: {identifier}")


class ValidationError(PricingError):
    """Entrée rejetée avant toute écriture ; le message décrit la contrainte violée."""


class StorageError(PricingError):
    """Échec de la couche de stockage (réponse invalide, RPC en erreur)."""
