"""
EventChannel tests
"""
from core.models import EntryStatus
from core.services.events import (
    EntryProgressEvent,
    EntryStatusEvent,
    EventChannel,
    EventRecorder,
    SubmissionStateEvent,
)
from core.services.interfaces import SubmissionState


class TestEventChannel:
    def test_subscribe_and_publish(self):
        channel = EventChannel()
        received = []
        channel.subscribe(EntryProgressEvent, received.append)

        channel.publish(EntryProgressEvent(entry_id="a", progress=40))
        channel.publish(EntryStatusEvent(entry_id="a", status=EntryStatus.SUCCESS))

        assert received == [EntryProgressEvent(entry_id="a", progress=40)]

    def test_unsubscribe(self):
        channel = EventChannel()
        received = []
        channel.subscribe(EntryProgressEvent, received.append)
        channel.unsubscribe(EntryProgressEvent, received.append)

        channel.publish(EntryProgressEvent(entry_id="a", progress=1))

        assert received == []

    def test_duplicate_subscription_is_ignored(self):
        channel = EventChannel()
        received = []
        channel.subscribe(EntryProgressEvent, received.append)
        channel.subscribe(EntryProgressEvent, received.append)

        channel.publish(EntryProgressEvent(entry_id="a", progress=1))

        assert len(received) == 1

    def test_failing_handler_does_not_stop_delivery(self):
        channel = EventChannel()
        received = []

        def broken(_event):
            raise RuntimeError("handler bug")

        channel.subscribe(SubmissionStateEvent, broken)
        channel.subscribe(SubmissionStateEvent, received.append)

        channel.publish(SubmissionStateEvent(state=SubmissionState.MERGING))

        assert len(received) == 1

    def test_clear(self):
        channel = EventChannel()
        recorder = EventRecorder(channel)
        channel.clear()

        channel.publish(EntryProgressEvent(entry_id="a", progress=1))

        assert recorder.events == []


class TestEventRecorder:
    def test_records_everything_in_order(self):
        channel = EventChannel()
        recorder = EventRecorder(channel)

        channel.publish(SubmissionStateEvent(state=SubmissionState.MERGING))
        channel.publish(EntryProgressEvent(entry_id="a", progress=10))

        assert len(recorder.events) == 2
        assert recorder.of_type(EntryProgressEvent) == [EntryProgressEvent(entry_id="a", progress=10)]


def test_terminal_states():
    terminal = {s for s in SubmissionState if s.is_terminal}
    assert terminal == {SubmissionState.ALL_DONE, SubmissionState.FAILED, SubmissionState.MERGE_FAILED}
