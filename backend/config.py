from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class FlaskSettings:
    secret_key: str = "chainraffle-dev-secret"
    debug: bool = True


@dataclass(frozen=True)
class RaffleSettings:
    address: str
    entrance_fee: int
    interval: int
    key_hash: str
    subscription_id: int = 1
    callback_gas_limit: int = 500000


@dataclass(frozen=True)
class CoordinatorSettings:
    address: str
    api_key: str


@dataclass(frozen=True)
class AppSettings:
    flask: FlaskSettings
    raffle: RaffleSettings
    coordinator: CoordinatorSettings
    database_url: str


def _require(key: str) -> str:
    value = os.getenv(key)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


def _require_int(key: str) -> int:
    value = _require(key)
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {key} must be an integer") from exc


@lru_cache(maxsize=1)
def load_settings(dotenv_path: Optional[str] = None) -> AppSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    flask_settings = FlaskSettings(
        secret_key=os.getenv("FLASK_SECRET_KEY", "chainraffle-dev-secret"),
        debug=os.getenv("FLASK_DEBUG", "1") == "1",
    )

    raffle_settings = RaffleSettings(
        address=_require("RAFFLE_ADDRESS"),
        entrance_fee=_require_int("RAFFLE_ENTRANCE_FEE"),
        interval=_require_int("RAFFLE_INTERVAL"),
        key_hash=_require("RAFFLE_KEY_HASH"),
        subscription_id=int(os.getenv("RAFFLE_SUBSCRIPTION_ID", "1")),
        callback_gas_limit=int(os.getenv("RAFFLE_CALLBACK_GAS_LIMIT", "500000")),
    )

    coordinator_settings = CoordinatorSettings(
        address=_require("ORACLE_ADDRESS"),
        api_key=_require("ORACLE_API_KEY"),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///chainraffle.db")

    return AppSettings(
        flask=flask_settings,
        raffle=raffle_settings,
        coordinator=coordinator_settings,
        database_url=database_url,
    )
