"""In-process fan-out of alert updates to live subscribers (SSE clients)."""
import queue
import logging
import threading
from datetime import datetime, timezone
from models.enums import (
    UPDATE_NEW_ALERT, UPDATE_RULE_UPDATED, UPDATE_ALERT_RESOLVED, UPDATE_RESYNC,
)

logger = logging.getLogger("hostwatch.alerts.pubsub")


class AlertBroadcaster:
    """Each subscriber gets its own bounded queue of update dicts.

    Publishing never blocks: a subscriber whose queue is full is dropped. The
    last item left in its queue is a ``resync`` update, so the reader knows it
    missed updates and has to subscribe again.
    """

    def __init__(self, max_queue=100):
        self.max_queue = max_queue
        self._subscribers = set()
        self._lock = threading.Lock()

    def subscribe(self):
        q = queue.Queue(maxsize=self.max_queue)
        with self._lock:
            self._subscribers.add(q)
        logger.debug(f"Subscriber added ({len(self._subscribers)} total)")
        return q

    def unsubscribe(self, q):
        with self._lock:
            self._subscribers.discard(q)
        logger.debug(f"Subscriber removed ({len(self._subscribers)} total)")

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def publish(self, update):
        """Deliver an update to every subscriber. Returns how many received it."""
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for q in subscribers:
            try:
                q.put_nowait(update)
                delivered += 1
            except queue.Full:
                logger.warning("Dropping slow alert subscriber")
                self.unsubscribe(q)
                _mark_dropped(q)
        return delivered

    def publish_new_alert(self, alert):
        return self.publish({"type": UPDATE_NEW_ALERT, "alert": alert.to_dict()})

    def publish_rule_updated(self, rule_id, last_triggered=None):
        update = {"type": UPDATE_RULE_UPDATED, "rule_id": rule_id}
        if last_triggered is not None:
            update["last_triggered"] = last_triggered.isoformat()
        return self.publish(update)

    def publish_alert_resolved(self, alert_id, resolved_at=None):
        resolved_at = resolved_at or datetime.now(timezone.utc)
        return self.publish({
            "type": UPDATE_ALERT_RESOLVED,
            "alert_id": alert_id,
            "resolved_at": resolved_at.isoformat(),
        })


def _mark_dropped(q):
    # Make room by discarding the oldest pending updates until the marker fits
    while True:
        try:
            q.put_nowait({"type": UPDATE_RESYNC})
            return
        except queue.Full:
            try:
                q.get_nowait()
            except queue.Empty:
                continue
