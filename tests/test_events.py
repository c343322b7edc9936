"""
Tests for the change-record queue.
"""

from sapsun.events import ChangeEvent, EventKind, EventQueue


def make_event(tick: int = 0) -> ChangeEvent:
    return ChangeEvent(EventKind.TICK, tick, payload=tick)


class TestEventQueue:
    """Tests for draining and dispatching change records."""

    def test_drain_returns_in_order_and_empties(self) -> None:
        queue = EventQueue()
        for tick in range(3):
            queue.push(make_event(tick))

        drained = queue.drain()
        assert [e.tick for e in drained] == [0, 1, 2]
        assert len(queue) == 0
        assert queue.drain() == []

    def test_bounded_drops_oldest(self) -> None:
        queue = EventQueue(limit=2)
        for tick in range(5):
            queue.push(make_event(tick))
        assert [e.tick for e in queue.drain()] == [3, 4]

    def test_listeners_only_run_on_dispatch(self) -> None:
        queue = EventQueue()
        received = []
        queue.subscribe(received.append)

        queue.push(make_event(1))
        assert received == []

        assert queue.dispatch() == 1
        assert [e.tick for e in received] == [1]
        assert len(queue) == 0

    def test_unsubscribe(self) -> None:
        queue = EventQueue()
        received = []
        unsubscribe = queue.subscribe(received.append)
        unsubscribe()
        unsubscribe()  # Second call is harmless

        queue.push(make_event())
        queue.dispatch()
        assert received == []

    def test_records_pushed_during_dispatch_wait(self) -> None:
        """A listener that pushes does not see its own record this round."""
        queue = EventQueue()
        seen = []

        def echo(event: ChangeEvent) -> None:
            seen.append(event.tick)
            if event.tick == 0:
                queue.push(make_event(1))

        queue.subscribe(echo)
        queue.push(make_event(0))
        queue.dispatch()
        assert seen == [0]
        assert len(queue) == 1
        queue.dispatch()
        assert seen == [0, 1]
