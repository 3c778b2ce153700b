from library.events import LibraryEvents
from library.types import ProgressEvent


def test_listener_failures_do_not_stop_other_listeners(caplog) -> None:
    events = LibraryEvents()
    received = []

    def broken(_event) -> None:
        raise ValueError("listener bug")

    events.on_progress(broken)
    events.on_progress(received.append)
    extra = []

    events.progress(ProgressEvent(1, 2, "RJ123456", "processing"), extra.append)

    assert [event.id for event in received] == ["RJ123456"]
    assert len(extra) == 1
    assert "listener" in caplog.text


def test_updated_and_state_listeners_receive_payloads() -> None:
    events = LibraryEvents()
    updates, states = [], []
    events.on_updated(updates.append)
    events.on_scan_state_changed(states.append)

    events.updated("watcher")
    events.updated()
    events.scan_state_changed(True)

    assert updates == ["watcher", None]
    assert states == [True]
