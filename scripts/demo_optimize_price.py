"""
Script de démonstration de l'optimiseur de prix d'un plan d'abonnement.

Usage (depuis la racine du projet) :

    python -m scripts.demo_optimize_price --plan-id YOUR_PLAN_ID
    python -m scripts.demo_optimize_price --plan-id YOUR_PLAN_ID --apply

Sans `--apply`, la recommandation est seulement calculée. Avec `--apply`,
le prix est appliqué si l'écart dépasse le seuil de la configuration.
Le résultat est imprimé en JSON sur stdout ; les logs partent sur stderr.
"""

import argparse
import json
import sys

from subscription_pricing.config.settings import Settings, configure_logging
from subscription_pricing.service import build_pricing_service


def main() -> None:
    parser = argparse.ArgumentParser(description="Demo: optimise le prix d'un plan d'abonnement.")
    parser.add_argument("--plan-id", required=True, help="ID du plan (UUID Supabase).")
    parser.add_argument("--apply", action="store_true", help="Appliquer le prix recommandé si justifié.")

    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings)

    try:
        service = build_pricing_service(settings)
        recommendation, applied = service.update_price_optimization(args.plan_id, apply_changes=args.apply)

        result = {
            "plan_id": args.plan_id,
            "recommendation": recommendation.to_dict() if recommendation else None,
            "applied": applied.to_dict() if applied else None,
        }
        # Uniquement le JSON sur stdout pour que l'appelant puisse le parser
        print(json.dumps(result, ensure_ascii=False))

    except Exception as e:
        error_response = {
            "error": True,
            "error_type": type(e).__name__,
            "error_message": str(e),
            "plan_id": args.plan_id,
            "recommendation": None,
            "applied": None,
        }
        print(json.dumps(error_response, ensure_ascii=False))
        sys.exit(1)


if __name__ == "__main__":
    main()
