"""
Tests for the change notification fan-out.
"""

import threading

from uploader.notifications import ChangeNotifier


class TestChangeNotifier:
    """Tests for subscription delivery."""

    def test_publish_reaches_every_subscriber(self):
        notifier = ChangeNotifier()
        first = notifier.subscribe()
        second = notifier.subscribe()

        notifier.publish()

        assert first.pending() == 1
        assert second.pending() == 1

    def test_wait_times_out_without_signal(self):
        notifier = ChangeNotifier()
        subscription = notifier.subscribe()

        assert subscription.wait(timeout=0.01) is False

    def test_wait_wakes_on_publish_from_other_thread(self):
        notifier = ChangeNotifier()
        subscription = notifier.subscribe()

        thread = threading.Thread(target=notifier.publish)
        thread.start()
        thread.join()

        assert subscription.wait(timeout=1) is True
        assert subscription.pending() == 0

    def test_drain_returns_count(self):
        notifier = ChangeNotifier()
        subscription = notifier.subscribe()
        notifier.publish()
        notifier.publish()

        assert subscription.drain() == 2
        assert subscription.pending() == 0

    def test_closed_subscription_stops_receiving(self):
        notifier = ChangeNotifier()
        subscription = notifier.subscribe()
        subscription.close()

        notifier.publish()

        assert subscription.pending() == 0
        assert notifier.subscriber_count == 0

    def test_failing_listener_does_not_block_others(self):
        notifier = ChangeNotifier()
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        notifier.add_listener(broken)
        notifier.add_listener(lambda: calls.append("ok"))

        notifier.publish()

        assert calls == ["ok"]

    def test_remove_listener(self):
        notifier = ChangeNotifier()
        calls = []
        listener = lambda: calls.append(1)  # noqa: E731
        notifier.add_listener(listener)
        notifier.remove_listener(listener)

        notifier.publish()

        assert calls == []
