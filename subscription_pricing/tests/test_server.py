"""
Tests unitaires pour server.py (protocole JSON ligne par ligne).
"""

import io
import json
from unittest.mock import MagicMock

from subscription_pricing.server import handle_line, process_request, serve


class TestProcessRequest:
    """Tests pour process_request et handle_line."""

    def test_assign_variant_without_test(self, service, plan):
        response = process_request(service, {"action": "assign_variant", "planId": plan.id, "customerId": "c-1"})

        assert response == {
            "status": "success",
            "action": "assign_variant",
            "price": "50.00",
            "variant_id": None,
            "test_id": None,
        }

    def test_create_then_assign(self, service, plan):
        created = process_request(
            service,
            {
                "action": "create_price_test",
                "planId": plan.id,
                "durationDays": 7,
                "variants": [
                    {"name": "Low", "price": "45.00", "trafficAllocation": 50},
                    {"name": "High", "price": "55.00", "trafficAllocation": 50},
                ],
            },
        )
        assert created["test"]["variants"][-1]["name"] == "Control"

        assigned = process_request(service, {"action": "assign_variant", "planId": plan.id, "customerId": "c-1"})
        assert assigned["test_id"] == created["test"]["id"]
        assert assigned["price"] in ("45.00", "55.00")

    def test_optimize_price_insufficient_data(self, service, plan):
        response = process_request(service, {"action": "optimize_price", "planId": plan.id})
        assert response["recommendation"] is None

    def test_simulate_revenue(self, service, plan):
        response = process_request(
            service, {"action": "simulate_revenue", "planId": plan.id, "priceDelta": "5", "months": 2}
        )
        assert [p["month"] for p in response["projections"]] == [1, 2]

    def test_unknown_action_is_an_error(self, service):
        response = handle_line(service, json.dumps({"action": "drop_tables"}))

        assert response["status"] == "error"
        assert response["type"] == "ValidationError"
        assert "drop_tables" in response["error"]

    def test_missing_parameter_is_an_error(self, service):
        response = handle_line(service, json.dumps({"action": "assign_variant", "planId": "plan-pro"}))
        assert response["type"] == "ValidationError"
        assert "customerId" in response["error"]

    def test_not_found_is_an_error(self, service):
        response = handle_line(service, json.dumps({"action": "record_conversion", "variantId": "ptv_x"}))
        assert response["type"] == "NotFoundError"

    def test_invalid_json(self, service):
        response = handle_line(service, "{not json")
        assert response["status"] == "error"
        assert response["type"] == "JSONDecodeError"

    def test_blank_line_ignored(self, service):
        assert handle_line(service, "   \n") is None


class TestServe:
    """Tests pour la boucle serve."""

    def test_one_response_per_request(self):
        service = MagicMock()
        service.health.return_value = {"pending_reruns": []}
        stdin = io.StringIO('{"action": "health"}\n\n{"action": "unknown"}\n{"action": "health"}\n')
        stdout = io.StringIO()

        serve(service, stdin=stdin, stdout=stdout)

        responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [r["status"] for r in responses] == ["success", "error", "success"]
        assert service.health.call_count == 2
