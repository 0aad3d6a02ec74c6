from __future__ import annotations


class OracleError(Exception):
    """Base error for coordinator-side failures."""

    code = "oracle_error"


class SubscriptionNotFound(OracleError):
    code = "subscription_not_found"


class InsufficientSubscriptionBalance(OracleError):
    code = "insufficient_subscription_balance"


class RequestNotFound(OracleError):
    code = "request_not_found"


class InvalidFulfillment(OracleError):
    code = "invalid_fulfillment"
