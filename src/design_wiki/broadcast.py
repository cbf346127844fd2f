"""Broadcast sink for change notifications.

The watcher hands every change message to a BroadcastHub, which fans it out
to subscribers. A subscriber is any callable taking the serialized message;
the websocket layer and WebhookSubscriber are both subscribers.

Message format:
{
    "type": "file-changed",
    "payload": {"path": "combat/spell.md", "action": "update"}
}
"""

import json
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

import httpx

logger = logging.getLogger(__name__)

FILE_CHANGED = "file-changed"
ACTIONS = {"create", "update", "delete"}

# Timeout for webhook delivery
DELIVERY_TIMEOUT = 10.0  # seconds

# Rate limiting: max concurrent deliveries
MAX_CONCURRENT_DELIVERIES = 10

Subscriber = Callable[[str], None]


def file_changed_message(path: str, action: str) -> str:
    """Serialize a file-changed notification.

    Raises:
        ValueError: If action is not create, update or delete.
    """
    if action not in ACTIONS:
        raise ValueError(f"Invalid action: {action}")
    return json.dumps(
        {"type": FILE_CHANGED, "payload": {"path": path, "action": action}},
        ensure_ascii=False,
    )


class BroadcastHub:
    """Fans serialized messages out to registered subscribers.

    Thread-safe. A subscriber that raises is dropped, mirroring a websocket
    client whose send failed; the other subscribers still get the message.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)
                logger.info("Subscriber added (%d connected)", len(self._subscribers))

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
                logger.info("Subscriber removed (%d connected)", len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, message: str) -> int:
        """Send message to every subscriber.

        Returns the number of subscribers that received it.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber(message)
                delivered += 1
            except Exception:
                logger.exception("Subscriber failed, removing it")
                self.unsubscribe(subscriber)
        return delivered

    __call__ = broadcast


class WebhookSubscriber:
    """Subscriber that POSTs each message to a list of webhook URLs.

    Delivery is non-blocking: requests run on a thread pool and failures are
    logged, never raised back into the watcher.
    """

    def __init__(self, urls: list[str], timeout: float = DELIVERY_TIMEOUT):
        """Initialize the webhook subscriber.

        Args:
            urls: URLs to POST messages to
            timeout: Per-request timeout in seconds
        """
        self.urls = list(urls)
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=MAX_CONCURRENT_DELIVERIES,
            thread_name_prefix="webhook-delivery",
        )
        self._shutdown_event = threading.Event()

    def __call__(self, message: str) -> None:
        if self._shutdown_event.is_set():
            logger.warning("Webhook subscriber is shutting down, dropping message")
            return
        for url in self.urls:
            self._executor.submit(self._deliver_sync, url, message)

    def shutdown(self) -> None:
        """Wait for pending deliveries and stop accepting new ones."""
        self._shutdown_event.set()
        self._executor.shutdown(wait=True, cancel_futures=False)
        logger.info("Webhook subscriber shutdown complete")

    def _deliver_sync(self, url: str, message: str) -> bool:
        """Deliver one message to one URL. Returns True on a 2xx response."""
        headers = {
            "Content-Type": "application/json",
            "X-Wiki-Event": FILE_CHANGED,
        }
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(url, content=message.encode("utf-8"), headers=headers)
        except httpx.TimeoutException:
            logger.warning("Webhook delivery timed out: %s", url)
            return False
        except httpx.RequestError as e:
            logger.warning("Webhook delivery error for %s: %s", url, e)
            return False

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Webhook delivery failed for %s: HTTP %d: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            return False

        logger.debug("Webhook delivered to %s", url)
        return True
