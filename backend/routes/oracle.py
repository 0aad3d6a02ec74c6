from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request

from oracle.raffle_client import ORACLE_TOKEN_HEADER

from ..config import load_settings
from ..schemas import FulfillmentRequest, FulfillmentResponse
from ..services.raffles import raffle_repo

bp = Blueprint("oracle", __name__)


def _is_coordinator() -> bool:
    expected = load_settings().coordinator.api_key
    provided = request.headers.get(ORACLE_TOKEN_HEADER, "")
    return hmac.compare_digest(provided.encode(), expected.encode())


@bp.before_request
def verify_coordinator():
    if not _is_coordinator():
        current_app.logger.warning("Rejected oracle call from %s", request.remote_addr)
        return jsonify({"error": "unauthorized", "message": "oracle token required"}), 401
    return None


@bp.get("/requests")
def list_pending_requests():
    with raffle_repo.view() as unit:
        pending = unit.coordinator.pending_requests()
    return jsonify({"requests": [item.to_dict() for item in pending]})


@bp.post("/fulfillments")
def fulfill_randomness():
    payload = request.get_json(force=True, silent=True) or {}
    data = FulfillmentRequest(**payload)

    with raffle_repo.unit() as unit:
        prize = unit.raffle.get_balance()
        # The token identifies the caller as the configured coordinator.
        winner = unit.raffle.on_randomness_delivered(
            unit.coordinator.address, data.request_id, data.random_words
        )
        unit.coordinator.mark_fulfilled(data.request_id)

    current_app.logger.info("Request %s fulfilled; winner=%s prize=%s", data.request_id, winner, prize)
    response = FulfillmentResponse(request_id=str(data.request_id), winner=winner, prize=str(prize))
    return jsonify(response.model_dump())
