from .base import BeaconRound, RandomnessDataSource
from .http_api import HttpBeaconDataSource, HttpBeaconDataSourceConfig

__all__ = [
    "BeaconRound",
    "RandomnessDataSource",
    "HttpBeaconDataSource",
    "HttpBeaconDataSourceConfig",
]
