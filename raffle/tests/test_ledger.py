import unittest

from raffle.errors import InsufficientBalance, InvalidAddress, TransferFailed
from raffle.events import EnteredRaffle, EventLog
from raffle.ledger import Ledger
from raffle.transaction import Transaction

ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20
CAROL = "0x" + "33" * 20


class LedgerTests(unittest.TestCase):
    def test_transfer_moves_funds(self) -> None:
        ledger = Ledger({ALICE: 100})
        ledger.transfer(ALICE, BOB, 40)
        self.assertEqual(ledger.balance_of(ALICE), 60)
        self.assertEqual(ledger.balance_of(BOB), 40)

    def test_overdraft_is_rejected(self) -> None:
        ledger = Ledger({ALICE: 10})
        with self.assertRaises(InsufficientBalance):
            ledger.transfer(ALICE, BOB, 11)
        self.assertEqual(ledger.balance_of(ALICE), 10)

    def test_negative_amounts_and_bad_addresses(self) -> None:
        ledger = Ledger()
        with self.assertRaises(ValueError):
            ledger.mint(ALICE, -1)
        with self.assertRaises(InvalidAddress):
            ledger.mint("not-an-address", 1)

    def test_refusing_receiver_undoes_transfer(self) -> None:
        ledger = Ledger({ALICE: 100})
        ledger.register_receiver(BOB, lambda sender, amount: False)
        with self.assertRaises(TransferFailed):
            ledger.transfer(ALICE, BOB, 50)
        self.assertEqual(ledger.balance_of(ALICE), 100)
        self.assertEqual(ledger.balance_of(BOB), 0)

    def test_reverting_receiver_undoes_its_own_moves(self) -> None:
        ledger = Ledger({ALICE: 100})

        def hook(sender, amount):
            ledger.transfer(BOB, CAROL, amount)
            raise RuntimeError("no receive function")

        ledger.register_receiver(BOB, hook)
        with self.assertRaises(TransferFailed) as ctx:
            ledger.transfer(ALICE, BOB, 50)
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(ledger.snapshot(), {ALICE: 100})

    def test_accepting_receiver_keeps_funds(self) -> None:
        received = []
        ledger = Ledger({ALICE: 100})
        ledger.register_receiver(BOB, lambda sender, amount: received.append((sender, amount)))
        ledger.transfer(ALICE, BOB, 25)
        self.assertEqual(received, [(ALICE, 25)])
        self.assertEqual(ledger.balance_of(BOB), 25)


class TransactionTests(unittest.TestCase):
    def test_deferred_calls_run_after_body(self) -> None:
        order = []
        ledger = Ledger({ALICE: 5})
        with Transaction([ledger]) as tx:
            tx.defer(order.append, "interaction")
            order.append("effect")
        self.assertEqual(order, ["effect", "interaction"])

    def test_failing_interaction_restores_all_journals(self) -> None:
        ledger = Ledger({ALICE: 5})
        events = EventLog()

        def explode():
            raise TransferFailed("boom")

        with self.assertRaises(TransferFailed):
            with Transaction([ledger, events]) as tx:
                ledger.transfer(ALICE, BOB, 5)
                events.emit(EnteredRaffle(player=ALICE))
                tx.defer(explode)

        self.assertEqual(ledger.balance_of(ALICE), 5)
        self.assertEqual(ledger.balance_of(BOB), 0)
        self.assertEqual(len(events), 0)

    def test_error_in_body_skips_interactions(self) -> None:
        calls = []
        ledger = Ledger({ALICE: 5})
        with self.assertRaises(ValueError):
            with Transaction([ledger]) as tx:
                tx.defer(calls.append, "never")
                ledger.transfer(ALICE, BOB, 1)
                raise ValueError("check failed")
        self.assertEqual(calls, [])
        self.assertEqual(ledger.balance_of(ALICE), 5)


if __name__ == "__main__":
    unittest.main()
