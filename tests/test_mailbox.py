from __future__ import annotations

import threading

import pytest

from thermolink.core.mailbox import SerialMailbox


def test_reentrant_posts_run_after_current_handler() -> None:
    trace: list[str] = []

    def handler(event: str) -> None:
        trace.append(f"start {event}")
        if event == "a":
            mailbox.post("b")
            mailbox.post("c")
        trace.append(f"end {event}")

    mailbox: SerialMailbox[str] = SerialMailbox(handler)
    mailbox.post("a")

    assert trace == ["start a", "end a", "start b", "end b", "start c", "end c"]


def test_handler_failure_resets_mailbox() -> None:
    seen: list[int] = []

    def handler(event: int) -> None:
        if event == 1:
            raise ValueError("boom")
        seen.append(event)

    mailbox: SerialMailbox[int] = SerialMailbox(handler)
    with pytest.raises(ValueError):
        mailbox.post(1)
    mailbox.post(2)

    assert seen == [2]


def test_concurrent_posts_never_overlap() -> None:
    active = 0
    overlaps = 0
    handled: list[int] = []
    guard = threading.Lock()

    def handler(event: int) -> None:
        nonlocal active, overlaps
        with guard:
            active += 1
            if active > 1:
                overlaps += 1
        handled.append(event)
        with guard:
            active -= 1

    mailbox: SerialMailbox[int] = SerialMailbox(handler)
    threads = [
        threading.Thread(target=lambda base=base: [mailbox.post(base + i) for i in range(200)])
        for base in (0, 1000, 2000, 3000)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == 0
    assert len(handled) == 800
