"""
Serveur Python persistant pour le moteur de pricing d'abonnements.

Le service est construit une fois au démarrage puis le serveur attend les
requêtes sur stdin. Une requête qui échoue est signalée par une réponse
d'erreur ; le serveur ne s'arrête pas.

Communication :
- Entrée : JSON ligne par ligne sur stdin, champ `action` obligatoire
- Sortie : JSON ligne par ligne sur stdout
- Logs : stderr

Actions :
    create_price_test    {planId, variants, durationDays, name?, description?, minConfidence?}
    assign_variant       {planId, customerId}
    record_conversion    {variantId}
    analyze_test_results {testId}
    apply_test_results   {testId}
    optimize_price       {planId}
    simulate_revenue     {planId, priceDelta, months?}
    health               {}
"""

import json
import logging
import os
import sys
import traceback
from typing import Any, Callable, Dict, Optional, TextIO

from .config.settings import Settings, configure_logging
from .exceptions import ValidationError
from .interfaces.data_access import PriceTest
from .money import to_money
from .service import PricingService, build_pricing_service

logger = logging.getLogger(__name__)


def _require(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} est requis")
    return value


def _test_to_dict(test: PriceTest) -> Dict[str, Any]:
    return {
        "id": test.id,
        "plan_id": test.plan_id,
        "name": test.name,
        "status": test.status.value,
        "start_date": test.start_date.isoformat(),
        "end_date": test.end_date.isoformat(),
        "target_metric": test.target_metric,
        "min_confidence": test.min_confidence,
        "variants": [
            {
                "id": v.id,
                "name": v.name,
                "price": str(v.price),
                "is_control": v.is_control,
                "traffic_allocation": str(v.traffic_allocation),
                "impression_count": v.impression_count,
                "conversion_count": v.conversion_count,
            }
            for v in test.variants
        ],
    }


def _create_price_test(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    variants = _require(data, "variants")
    if not isinstance(variants, list):
        raise ValidationError("variants doit être une liste")
    test = service.create_price_test(
        plan_id=_require(data, "planId"),
        variants=variants,
        duration_days=_require(data, "durationDays"),
        name=data.get("name"),
        description=data.get("description"),
        min_confidence=data.get("minConfidence"),
        target_metric=data.get("targetMetric"),
    )
    return {"test": _test_to_dict(test)}


def _assign_variant(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    assignment = service.assign_variant(_require(data, "planId"), _require(data, "customerId"))
    return assignment.to_dict()


def _record_conversion(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    variant_id = _require(data, "variantId")
    service.record_conversion(variant_id)
    return {"variant_id": variant_id}


def _analyze_test_results(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"analysis": service.analyze_test_results(_require(data, "testId")).to_dict()}


def _apply_test_results(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    applied = service.apply_test_results(_require(data, "testId"))
    return {"applied": applied is not None, "change": applied.to_dict() if applied else None}


def _optimize_price(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    recommendation = service.optimize_price(_require(data, "planId"))
    return {"recommendation": recommendation.to_dict() if recommendation else None}


def _simulate_revenue(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    projections = service.simulate_revenue(
        _require(data, "planId"),
        to_money(_require(data, "priceDelta")),
        months=int(data.get("months", 12)),
    )
    return {"projections": [p.to_dict() for p in projections]}


def _health(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    return service.health()


ACTIONS: Dict[str, Callable[[PricingService, Dict[str, Any]], Dict[str, Any]]] = {
    "create_price_test": _create_price_test,
    "assign_variant": _assign_variant,
    "record_conversion": _record_conversion,
    "analyze_test_results": _analyze_test_results,
    "apply_test_results": _apply_test_results,
    "optimize_price": _optimize_price,
    "simulate_revenue": _simulate_revenue,
    "health": _health,
}


def process_request(service: PricingService, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Traite une requête JSON unique.

    Retourne `{"status": "success", "action": ..., ...}` ; toute erreur
    est levée et transformée en réponse d'erreur par `handle_line`.
    """
    if not isinstance(data, dict):
        raise ValidationError("La requête doit être un objet JSON")
    action = _require(data, "action")
    handler = ACTIONS.get(action)
    if handler is None:
        raise ValidationError(f"Action inconnue: {action}")

    response = {"status": "success", "action": action}
    response.update(handler(service, data))
    return response


def handle_line(service: PricingService, line: str) -> Optional[Dict[str, Any]]:
    """Réponse à une ligne d'entrée ; None pour une ligne vide."""
    line = line.strip()
    if not line:
        return None
    try:
        return process_request(service, json.loads(line))
    except Exception as e:
        # Erreur spécifique à la requête : on répond et on continue
        logger.error("Erreur traitement requête: %s\n%s", e, traceback.format_exc())
        return {"error": str(e), "status": "error", "type": type(e).__name__}


def serve(service: PricingService, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> None:
    while True:
        try:
            line = stdin.readline()
            if not line:
                break  # Fin du flux (le processus parent a fermé stdin)
            response = handle_line(service, line)
            if response is None:
                continue
            stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
            stdout.flush()
        except KeyboardInterrupt:
            break


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)
    logger.info("Service de pricing d'abonnements démarré (PID: %s)", os.getpid())
    serve(build_pricing_service(settings))


if __name__ == "__main__":
    main()
