"""
Data-change notifications.

Write operations publish the topic they touched after a successful commit.
Readers compare per-topic versions to decide when cached data is stale.
"""
import logging
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)

TOPICS = ("categories", "tests", "patients", "selections")

Listener = Callable[[str, int], None]


class ChangeFeed:
    def __init__(self) -> None:
        self._versions: dict[str, int] = defaultdict(int)
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, topic: str) -> int:
        if topic not in TOPICS:
            raise ValueError(f"Unknown change topic: {topic}")
        self._versions[topic] += 1
        version = self._versions[topic]
        for listener in list(self._listeners):
            try:
                listener(topic, version)
            except Exception:
                # A failing listener must not undo a committed write.
                logger.exception("Change listener failed for topic %s", topic)
        return version

    def version(self, topic: str) -> int:
        return self._versions[topic]

    def versions(self) -> dict[str, int]:
        return {topic: self._versions[topic] for topic in TOPICS}


change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return change_feed


def log_change(topic: str, version: int) -> None:
    logger.info("Data changed: %s (version %d)", topic, version)
