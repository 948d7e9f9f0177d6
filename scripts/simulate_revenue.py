"""
Script pour simuler le revenu d'un plan sur plusieurs mois après un changement de prix.

Usage:
    python -m scripts.simulate_revenue --plan-id PLAN_ID --price-delta 5.00 --months 12

Le nombre d'abonnés actifs et l'élasticité moyenne sont lus depuis Supabase ;
aucune donnée n'est modifiée.
"""

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation

from subscription_pricing.config.settings import Settings, configure_logging
from subscription_pricing.service import build_pricing_service


def main() -> None:
    parser = argparse.ArgumentParser(description="Simule le revenu d'un plan pour un delta de prix.")
    parser.add_argument("--plan-id", required=True, help="ID du plan (UUID Supabase).")
    parser.add_argument("--price-delta", required=True, help="Variation de prix (ex: 5.00 ou -2.50).")
    parser.add_argument("--months", type=int, default=12, help="Horizon de simulation en mois.")

    args = parser.parse_args()

    try:
        price_delta = Decimal(args.price_delta)
    except InvalidOperation:
        print(f"❌ Erreur: delta de prix invalide: {args.price_delta}", file=sys.stderr)
        sys.exit(1)

    settings = Settings.from_env()
    configure_logging(settings)

    try:
        service = build_pricing_service(settings)
        projections = service.simulate_revenue(args.plan_id, price_delta, months=args.months)
        print(json.dumps([p.to_dict() for p in projections], indent=2, ensure_ascii=False))
    except Exception as e:
        print(f"❌ Erreur lors de la simulation: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
