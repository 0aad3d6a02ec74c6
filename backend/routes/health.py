from __future__ import annotations

from flask import Blueprint, jsonify
from sqlalchemy import text

from ..db import engine

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return jsonify({"status": "ok"})
