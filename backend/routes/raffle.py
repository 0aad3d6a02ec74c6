from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..schemas import DrawResponse, EntryRequest, EntryResponse, RaffleView, UpkeepResponse
from ..services.raffles import raffle_repo

bp = Blueprint("raffle", __name__)


@bp.get("")
def get_raffle():
    with raffle_repo.view() as unit:
        raffle = unit.raffle
        config = raffle.config
        pending = raffle.get_pending_request_id()
        view = RaffleView(
            address=raffle.address,
            state=raffle.get_raffle_state().name,
            entrance_fee=str(raffle.get_entrance_fee()),
            interval=raffle.get_interval(),
            player_count=raffle.get_number_of_players(),
            balance=str(raffle.get_balance()),
            last_timestamp=raffle.get_last_timestamp(),
            recent_winner=raffle.get_recent_winner(),
            pending_request_id=str(pending) if pending is not None else None,
            coordinator=config.coordinator,
            key_hash=config.key_hash,
            subscription_id=str(config.subscription_id),
            callback_gas_limit=config.callback_gas_limit,
            request_confirmations=raffle.get_request_confirmations(),
            num_words=raffle.get_num_words(),
        )
    return jsonify(view.model_dump())


@bp.get("/players")
def list_players():
    with raffle_repo.view() as unit:
        players = list(unit.raffle.get_players())
    return jsonify({"players": players})


@bp.post("/entries")
def enter_raffle():
    payload = request.get_json(force=True, silent=True) or {}
    data = EntryRequest(**payload)

    with raffle_repo.unit() as unit:
        # The payment arrives with the call; it is only kept if the entry succeeds.
        unit.ledger.mint(data.player, data.payment)
        unit.raffle.enter(data.player, data.payment)
        response = EntryResponse(
            player=data.player,
            player_count=unit.raffle.get_number_of_players(),
            balance=str(unit.raffle.get_balance()),
        )
    return jsonify(response.model_dump()), 201


@bp.get("/upkeep")
def check_upkeep():
    with raffle_repo.view() as unit:
        ready, check_data = unit.raffle.check_draw_ready()
    return jsonify(UpkeepResponse(ready=ready, check_data="0x" + check_data.hex()).model_dump())


@bp.post("/draws")
def request_draw():
    with raffle_repo.unit() as unit:
        request_id = unit.raffle.request_draw(caller=request.remote_addr)
        state = unit.raffle.get_raffle_state().name
    current_app.logger.info("Draw requested: request_id=%s", request_id)
    return jsonify(DrawResponse(request_id=str(request_id), state=state).model_dump()), 202
