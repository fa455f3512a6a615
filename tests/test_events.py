"""Tests for the domain event outbox."""
from scoreline.services.events import BET_SCORED, STANDINGS_RECOMPUTED, Outbox


class TestOutbox:

    def test_append_and_drain(self):
        outbox = Outbox()
        outbox.append(BET_SCORED, {"match_id": "m1"})
        outbox.append(STANDINGS_RECOMPUTED, {"league_id": "L1"})

        assert len(outbox) == 2
        drained = outbox.drain()

        assert [e.event_type for e in drained] == [BET_SCORED, STANDINGS_RECOMPUTED]
        assert len(outbox) == 0

    def test_handlers_receive_their_events(self):
        outbox = Outbox()
        seen = []

        def on_scored(event):
            seen.append(event.payload["match_id"])

        outbox.subscribe(BET_SCORED, on_scored)
        outbox.append(BET_SCORED, {"match_id": "m1"})
        outbox.append(STANDINGS_RECOMPUTED, {"league_id": "L1"})
        outbox.drain()

        assert seen == ["m1"]

    def test_failing_handler_does_not_block_others(self):
        outbox = Outbox()
        seen = []

        def broken(event):
            raise RuntimeError("handler down")

        def working(event):
            seen.append(event)

        outbox.subscribe(BET_SCORED, broken)
        outbox.subscribe(BET_SCORED, working)
        outbox.append(BET_SCORED, {"match_id": "m1"})

        assert len(outbox.drain()) == 1
        assert len(seen) == 1

    def test_discard(self):
        outbox = Outbox()
        outbox.append(BET_SCORED, {})
        outbox.append(BET_SCORED, {})

        assert outbox.discard() == 2
        assert outbox.pending == []
