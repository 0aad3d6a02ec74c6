import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from oracle.config import OracleSettings, RaffleApiSettings
from oracle.datasource.base import BeaconRound, RandomnessDataSource
from oracle.raffle_client import RaffleApiError
from oracle.scheduler import OracleScheduler, OracleStateStore
from oracle.types import PendingRequest, RandomnessRequest

RANDOMNESS_A = "aa" * 32
RANDOMNESS_B = "bb" * 32


class FakeBeacon(RandomnessDataSource):
    def __init__(self, latest_round: int) -> None:
        self.latest_round = latest_round
        self.closed = False
        self.fetched_rounds = []

    def _round(self, number: int) -> BeaconRound:
        return BeaconRound(round=number, randomness=RANDOMNESS_A if number % 2 else RANDOMNESS_B)

    async def fetch_latest(self) -> BeaconRound:
        return self._round(self.latest_round)

    async def fetch_round(self, round_number: int) -> BeaconRound:
        self.fetched_rounds.append(round_number)
        return self._round(round_number)

    async def close(self) -> None:
        self.closed = True


class FakeClient:
    def __init__(self, ready: bool = False, pending=None, reject_fulfill: bool = False) -> None:
        self.ready = ready
        self.pending = list(pending or [])
        self.reject_fulfill = reject_fulfill
        self.draw_requests = 0
        self.fulfillments = []

    async def check_draw_ready(self) -> bool:
        return self.ready

    async def request_draw(self) -> int:
        self.draw_requests += 1
        self.ready = False
        return 4242

    async def pending_requests(self):
        return list(self.pending)

    async def fulfill(self, request_id, random_words):
        if self.reject_fulfill:
            raise RaffleApiError(400, "transfer_failed", "winner refused payout")
        self.fulfillments.append((request_id, list(random_words)))
        self.pending = [p for p in self.pending if p.request_id != request_id]
        return {"winner": "0x" + "11" * 20}


def pending_request(request_id: int, confirmations: int = 3) -> PendingRequest:
    return PendingRequest(
        request_id=request_id,
        consumer="0x" + "99" * 20,
        request=RandomnessRequest(
            key_hash="0x" + "ab" * 32,
            subscription_id=1,
            request_confirmations=confirmations,
            callback_gas_limit=500_000,
            num_words=1,
        ),
        created_at=0,
    )


class OracleSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.state_path = Path(self._tmpdir.name) / "state.json"

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _make_settings(self, automation: bool = True) -> OracleSettings:
        return OracleSettings(
            api=RaffleApiSettings(url="http://raffle.test", api_key="oracle-secret"),
            poll_interval_seconds=5,
            automation_enabled=automation,
            submit_only_once=True,
            state_file=str(self.state_path),
        )

    def test_requests_draw_when_ready(self) -> None:
        beacon = FakeBeacon(latest_round=100)
        client = FakeClient(ready=True)
        scheduler = OracleScheduler(self._make_settings(), beacon, client)

        result = asyncio.run(scheduler.run_once())

        self.assertEqual(result.requested_id, 4242)
        self.assertEqual(result.fulfilled, [])
        self.assertEqual(client.draw_requests, 1)
        self.assertTrue(beacon.closed)

    def test_automation_can_be_disabled(self) -> None:
        client = FakeClient(ready=True)
        scheduler = OracleScheduler(self._make_settings(automation=False), FakeBeacon(1), client)

        result = asyncio.run(scheduler.run_once())

        self.assertIsNone(result.requested_id)
        self.assertEqual(client.draw_requests, 0)

    def test_pins_round_and_waits_for_confirmations(self) -> None:
        beacon = FakeBeacon(latest_round=100)
        client = FakeClient(pending=[pending_request(7)])
        scheduler = OracleScheduler(self._make_settings(), beacon, client)

        first = asyncio.run(scheduler.run_once())
        self.assertEqual(first.fulfilled, [])
        self.assertEqual(client.fulfillments, [])
        persisted = json.loads(self.state_path.read_text(encoding="utf-8"))
        self.assertEqual(persisted["pinned_rounds"], {"7": 103})

        beacon.latest_round = 105
        second = asyncio.run(scheduler.run_once())

        self.assertEqual(second.fulfilled, [7])
        self.assertEqual(beacon.fetched_rounds, [103])
        expected_words = BeaconRound(round=103, randomness=RANDOMNESS_A).words(1)
        self.assertEqual(client.fulfillments, [(7, expected_words)])
        persisted = json.loads(self.state_path.read_text(encoding="utf-8"))
        self.assertEqual(persisted["pinned_rounds"], {})

    def test_pin_survives_restart(self) -> None:
        beacon = FakeBeacon(latest_round=100)
        client = FakeClient(pending=[pending_request(7)])
        asyncio.run(OracleScheduler(self._make_settings(), beacon, client).run_once())

        beacon.latest_round = 200
        restarted = OracleScheduler(self._make_settings(), beacon, client)
        result = asyncio.run(restarted.run_once())

        self.assertEqual(result.fulfilled, [7])
        self.assertEqual(beacon.fetched_rounds, [103])

    def test_rejected_fulfillment_stays_pinned(self) -> None:
        beacon = FakeBeacon(latest_round=50)
        client = FakeClient(pending=[pending_request(9, confirmations=0)], reject_fulfill=True)
        scheduler = OracleScheduler(self._make_settings(), beacon, client)

        result = asyncio.run(scheduler.run_once())

        self.assertEqual(result.fulfilled, [])
        persisted = json.loads(self.state_path.read_text(encoding="utf-8"))
        self.assertEqual(persisted["pinned_rounds"], {"9": 50})

    def test_truncated_state_file_refuses_to_start(self) -> None:
        beacon = FakeBeacon(latest_round=100)
        client = FakeClient(pending=[pending_request(7)])
        asyncio.run(OracleScheduler(self._make_settings(), beacon, client).run_once())
        self.state_path.write_text(self.state_path.read_text(encoding="utf-8")[:10], encoding="utf-8")

        beacon.latest_round = 104
        with self.assertRaises(RuntimeError):
            OracleScheduler(self._make_settings(), beacon, client)
        self.assertEqual(client.fulfillments, [])
        self.assertEqual(beacon.fetched_rounds, [])

    def test_state_file_that_is_not_an_object_refuses_to_start(self) -> None:
        for content in ("[]", '{"pinned_rounds": [1, 2]}', '{"pinned_rounds": {"7": "soon"}}'):
            self.state_path.write_text(content, encoding="utf-8")
            with self.assertRaises(RuntimeError):
                OracleStateStore(str(self.state_path)).load_pins()

    def test_saving_pins_replaces_the_file_whole(self) -> None:
        store = OracleStateStore(str(self.state_path))
        store.save_pins({7: 103})
        store.save_pins({7: 103, 8: 110})

        self.assertEqual(store.load_pins(), {7: 103, 8: 110})
        self.assertEqual(sorted(p.name for p in self.state_path.parent.iterdir()), ["state.json"])


if __name__ == "__main__":
    unittest.main()
