"""
Configuration générale du moteur de pricing d'abonnements.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Charger .env depuis la racine du projet
project_root = Path(__file__).parent.parent.parent
load_dotenv(dotenv_path=project_root / ".env")


@dataclass
class Settings:
    """Configuration globale (base de données, devise, logging)."""

    # Base de données
    supabase_url: str
    supabase_key: str

    # Devise des plans (le moteur ne fait aucune conversion)
    base_currency: str = "EUR"

    # Fenêtre d'historique utilisée pour l'élasticité (en jours)
    elasticity_window_days: int = 90

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_file_path: str = "logs/subscription_pricing.log"

    @classmethod
    def from_env(cls) -> "Settings":
        """Crée une instance Settings depuis les variables d'environnement."""
        return cls(
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", os.getenv("SUPABASE_KEY", "")),
            base_currency=os.getenv("BASE_CURRENCY", "EUR"),
            elasticity_window_days=int(os.getenv("ELASTICITY_WINDOW_DAYS", "90")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_to_file=os.getenv("LOG_TO_FILE", "false").lower() == "true",
            log_file_path=os.getenv("LOG_FILE_PATH", "logs/subscription_pricing.log"),
        )


def configure_logging(settings: Settings) -> None:
    """
    Configure le logging racine.

    Les logs partent toujours sur stderr : stdout est réservé aux réponses
    JSON du serveur et des scripts.
    """
    handlers = [logging.StreamHandler(sys.stderr)]
    if settings.log_to_file:
        log_path = Path(settings.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
        force=True,
    )
