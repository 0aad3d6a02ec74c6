from __future__ import annotations

from flask import Blueprint, jsonify

from raffle.addresses import normalize_address

from ..db import session_scope
from ..models import AccountRecord
from ..schemas import AccountResponse

bp = Blueprint("accounts", __name__)


@bp.get("/<address>")
def get_account(address: str):
    checksum = normalize_address(address)
    with session_scope() as session:
        record = session.get(AccountRecord, checksum)
        balance = record.balance if record is not None else "0"
    return jsonify(AccountResponse(address=checksum, balance=balance).model_dump())
