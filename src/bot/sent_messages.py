"""Bounded record of message ids the assistant itself sent."""

from collections import OrderedDict

DEFAULT_CAPACITY = 1000


class SentMessageRecord:
    """Insertion-ordered set of provenance ids, oldest evicted first.

    Echo events carrying one of these ids are our own replies looping
    back; any other echo was typed by a human on the account.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            msg = "capacity must be positive"
            raise ValueError(msg)
        self._capacity = capacity
        self._ids: OrderedDict[str, None] = OrderedDict()

    def add(self, message_id: str | None) -> None:
        if not message_id:
            return
        self._ids[message_id] = None
        self._ids.move_to_end(message_id)
        while len(self._ids) > self._capacity:
            self._ids.popitem(last=False)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
