import asyncio
import unittest
from unittest import mock

from oracle.config import OracleSettings, RaffleApiSettings
from oracle.datasource.http_api import HttpBeaconDataSource, HttpBeaconDataSourceConfig
from oracle.raffle_client import ORACLE_TOKEN_HEADER, RaffleApiError, RaffleClient


def fake_response(payload, status: int = 200):
    resp = mock.Mock()
    resp.status_code = status
    resp.reason = "Bad Request" if status >= 400 else "OK"
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


class HttpBeaconDataSourceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = HttpBeaconDataSource(HttpBeaconDataSourceConfig(url="https://beacon.test/public/"))

    def test_fetch_latest_parses_round(self) -> None:
        payload = {"round": 12, "randomness": "0xABCDEF", "signature": "sig"}
        with mock.patch.object(self.source._session, "get", return_value=fake_response(payload)) as get:
            beacon = asyncio.run(self.source.fetch_latest())

        get.assert_called_once_with("https://beacon.test/public/latest", timeout=10)
        self.assertEqual(beacon.round, 12)
        self.assertEqual(beacon.randomness, "abcdef")
        self.assertEqual(beacon.signature, "sig")
        self.assertEqual(beacon.seed(), 0xABCDEF)

    def test_fetch_round_checks_round_number(self) -> None:
        payload = {"round": 13, "randomness": "ff"}
        with mock.patch.object(self.source._session, "get", return_value=fake_response(payload)):
            with self.assertRaises(ValueError):
                asyncio.run(self.source.fetch_round(12))

    def test_malformed_payloads_are_rejected(self) -> None:
        for payload in ({"randomness": "ff"}, {"round": 1}, {"round": 1, "randomness": "xyz"}, ["nope"]):
            with mock.patch.object(self.source._session, "get", return_value=fake_response(payload)):
                with self.assertRaises(ValueError):
                    asyncio.run(self.source.fetch_latest())


class RaffleClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        settings = OracleSettings(api=RaffleApiSettings(url="http://raffle.test/", api_key="secret"))
        self.client = RaffleClient(settings, session=self.session)

    def test_request_draw_returns_request_id(self) -> None:
        self.session.request.return_value = fake_response({"request_id": str(2**255)})
        request_id = asyncio.run(self.client.request_draw())
        self.assertEqual(request_id, 2**255)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "http://raffle.test/raffle/draws"))
        self.assertEqual(kwargs["headers"], {})

    def test_pending_requests_sends_oracle_token(self) -> None:
        self.session.request.return_value = fake_response(
            {
                "requests": [
                    {
                        "request_id": "77",
                        "consumer": "0x" + "99" * 20,
                        "key_hash": "0xkey",
                        "subscription_id": 1,
                        "request_confirmations": 3,
                        "callback_gas_limit": 500000,
                        "num_words": 1,
                        "created_at": 10,
                    }
                ]
            }
        )
        [pending] = asyncio.run(self.client.pending_requests())

        self.assertEqual(pending.request_id, 77)
        self.assertEqual(pending.request.request_confirmations, 3)
        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["headers"], {ORACLE_TOKEN_HEADER: "secret"})

    def test_fulfill_encodes_words_as_strings(self) -> None:
        self.session.request.return_value = fake_response({"winner": "0x" + "11" * 20})
        asyncio.run(self.client.fulfill(5, [2**256 - 1]))
        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["json"], {"request_id": "5", "random_words": [str(2**256 - 1)]})

    def test_error_responses_raise(self) -> None:
        self.session.request.return_value = fake_response(
            {"error": "raffle_not_open", "message": "raffle is calculating a winner"}, status=409
        )
        with self.assertRaises(RaffleApiError) as ctx:
            asyncio.run(self.client.request_draw())
        self.assertEqual(ctx.exception.status, 409)
        self.assertEqual(ctx.exception.code, "raffle_not_open")


if __name__ == "__main__":
    unittest.main()
