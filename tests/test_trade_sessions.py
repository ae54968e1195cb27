import unittest

from coinbot.services.trade_errors import AlreadyTrading, CannotTradeWithSelf, SessionExpiredOrInvalid
from coinbot.services.trade_sessions import (
    DeadlineQueue,
    TradeOffer,
    TradeSessionRegistry,
    TradeState,
)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TradeOfferTests(unittest.TestCase):
    def test_add_item_accumulates_and_drops_non_positive(self) -> None:
        offer = TradeOffer()
        offer.add_item("itemY", 3)
        offer.add_item("itemY", 2)
        self.assertEqual(offer.items, {"itemY": 5})
        offer.add_item("itemY", -5)
        self.assertEqual(offer.items, {})

    def test_remove_item_reports_whether_line_existed(self) -> None:
        offer = TradeOffer(items={"itemX": 1})
        self.assertTrue(offer.remove_item("itemX"))
        self.assertFalse(offer.remove_item("itemX"))


class DeadlineQueueTests(unittest.TestCase):
    def test_pops_only_due_keys_in_order(self) -> None:
        queue = DeadlineQueue()
        queue.schedule("b", 20.0)
        queue.schedule("a", 10.0)
        queue.schedule("c", 30.0)
        self.assertEqual(queue.pop_due(5.0), [])
        self.assertEqual(queue.pop_due(20.0), ["a", "b"])
        self.assertEqual(queue.pop_due(30.0), ["c"])
        self.assertEqual(len(queue), 0)

    def test_cancelled_key_never_fires(self) -> None:
        queue = DeadlineQueue()
        queue.schedule("a", 10.0)
        queue.cancel("a")
        self.assertEqual(queue.pop_due(100.0), [])
        self.assertEqual(len(queue), 0)


class TradeSessionRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.registry = TradeSessionRegistry(60, clock=self.clock)

    def test_create_registers_open_session(self) -> None:
        session = self.registry.create(1, 2)
        self.assertIs(self.registry.get(session.session_id), session)
        self.assertEqual(session.state, TradeState.OPEN)
        self.assertFalse(session.initiator_ready)
        self.assertFalse(session.counterparty_ready)
        self.assertEqual(session.expires_at, 60.0)
        self.assertTrue(session.session_id.isalnum())

    def test_self_trade_fails_before_registration(self) -> None:
        with self.assertRaises(CannotTradeWithSelf):
            self.registry.create(7, 7)
        self.assertEqual(len(self.registry), 0)

    def test_busy_user_cannot_open_second_session(self) -> None:
        self.registry.create(1, 2)
        with self.assertRaises(AlreadyTrading):
            self.registry.create(2, 3)
        with self.assertRaises(AlreadyTrading):
            self.registry.create(3, 1)
        self.assertEqual(len(self.registry), 1)

    def test_remove_is_idempotent(self) -> None:
        session = self.registry.create(1, 2)
        self.assertIs(self.registry.remove(session.session_id), session)
        self.assertIsNone(self.registry.remove(session.session_id))
        self.assertEqual(len(self.registry), 0)
        self.registry.create(1, 2)

    def test_require_unknown_session(self) -> None:
        with self.assertRaises(SessionExpiredOrInvalid):
            self.registry.require("missing")

    def test_expires_sixty_seconds_after_creation(self) -> None:
        session = self.registry.create(1, 2)
        self.clock.now = 59.9
        self.assertEqual(self.registry.pop_expired(), [])
        self.clock.now = 60.0
        expired = self.registry.pop_expired()
        self.assertEqual([s.session_id for s in expired], [session.session_id])
        self.assertEqual(session.state, TradeState.EXPIRED)
        self.assertIsNone(self.registry.get(session.session_id))

    def test_activity_does_not_push_deadline_back(self) -> None:
        session = self.registry.create(1, 2)
        self.clock.now = 50.0
        session.initiator_offer.add_item("itemX", 1)
        session.reset_ready()
        self.assertEqual(len(self.registry.pop_expired(60.0)), 1)

    def test_deadline_with_a_ready_side_is_spent_without_effect(self) -> None:
        session = self.registry.create(1, 2)
        session.toggle_ready(2)
        self.assertEqual(session.state, TradeState.READY_PENDING)
        self.assertEqual(self.registry.pop_expired(61.0), [])
        self.assertIs(self.registry.get(session.session_id), session)
        session.toggle_ready(2)
        self.assertEqual(self.registry.pop_expired(500.0), [])

    def test_removed_session_deadline_is_disarmed(self) -> None:
        first = self.registry.create(1, 2)
        self.registry.remove(first.session_id)
        self.assertEqual(self.registry.pop_expired(120.0), [])

    def test_unique_ids_retry_on_collision(self) -> None:
        ids = iter(["abc", "abc", "def"])
        registry = TradeSessionRegistry(60, clock=self.clock, id_factory=lambda: next(ids))
        self.assertEqual(registry.create(1, 2).session_id, "abc")
        self.assertEqual(registry.create(3, 4).session_id, "def")

    def test_close_drops_everything(self) -> None:
        self.registry.create(1, 2)
        self.registry.close()
        self.assertEqual(len(self.registry), 0)
        self.assertEqual(self.registry.pop_expired(1000.0), [])


if __name__ == "__main__":
    unittest.main()
