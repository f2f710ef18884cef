"""
In-process message transport for the ring.

Each actor owns a Mailbox; the Transport resolves ring indices to addresses
through the bootstrap address table and delivers best-effort, with a small
bounded number of retries before reporting the target as unreachable.
"""

import queue
import threading
import time
from collections import Counter
from typing import Callable, Dict, List, Optional

from models import Message, TransportConfig, UndeliveredMessage
from simlog import log_event, LogEntry, EventType, LogLevel

# Wakes a blocked receive without carrying a game message
_WAKE = object()


class DeliveryFailure(Exception):
    """Target mailbox is closed, full, or unknown."""


class Mailbox:
    """Thread-safe inbound queue for one actor."""

    def __init__(self, address: str, capacity: int = 0):
        self.address = address
        self._queue = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, message: Message) -> None:
        with self._lock:
            if self._closed.is_set():
                raise DeliveryFailure(f"{self.address} is closed")
            try:
                self._queue.put_nowait(message)
            except queue.Full as exc:
                raise DeliveryFailure(f"{self.address} is full") from exc

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Block for the next message; None on timeout or wake-up."""
        try:
            message = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return None if message is _WAKE else message

    def get_nowait(self) -> Optional[Message]:
        try:
            message = self._queue.get_nowait()
        except queue.Empty:
            return None
        return None if message is _WAKE else message

    def pending(self) -> int:
        return self._queue.qsize()

    def interrupt(self) -> None:
        """Unblock a receiver waiting in get()."""
        try:
            self._queue.put_nowait(_WAKE)
        except queue.Full:
            pass  # receiver is not blocked if the queue is full

    def close(self) -> List[Message]:
        """Refuse further deliveries. Returns the messages still queued, oldest first."""
        with self._lock:
            self._closed.set()
            pending = []
            while True:
                try:
                    message = self._queue.get_nowait()
                except queue.Empty:
                    break
                if message is not _WAKE:
                    pending.append(message)
        self.interrupt()
        return pending


class Transport:
    """Best-effort delivery to ring indices over a fixed address table."""

    def __init__(
        self,
        addresses: Dict[int, str],
        config: Optional[TransportConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.addresses = dict(addresses)
        self.config = config or TransportConfig()
        self._sleep = sleep
        self._mailboxes: Dict[str, Mailbox] = {}
        self._lock = threading.Lock()
        self.sent: Counter = Counter()
        self.failures: int = 0
        self.attempts: int = 0

    def open_mailbox(self, index: int) -> Mailbox:
        """Create and register the mailbox for ring index `index`."""
        address = self.addresses[index]
        mailbox = Mailbox(address, capacity=self.config.mailbox_capacity)
        self._mailboxes[address] = mailbox
        return mailbox

    def mailbox(self, index: int) -> Optional[Mailbox]:
        return self._mailboxes.get(self.addresses.get(index))

    def close_mailbox(self, index: int) -> int:
        """Close `index`'s mailbox and return its queued messages to their senders.

        Each queued message goes back wrapped in an UndeliveredMessage, so the
        sender learns of the failure exactly as if its own send had failed.
        Returns how many were handed back.
        """
        mailbox = self.mailbox(index)
        if mailbox is None:
            return 0

        returned = 0
        for message in mailbox.close():
            with self._lock:
                self.failures += 1
            if message.sender is None or message.sender == index:
                continue
            notice = UndeliveredMessage(target=index, message=message, sender=index)
            try:
                self._deliver(message.sender, notice)
            except DeliveryFailure as exc:
                log_event(
                    LogEntry(
                        event_type=EventType.DELIVERY_FAILURE,
                        actor_index=index,
                        payload={"target": message.sender, "kind": message.kind.value, "reason": str(exc)},
                        message=f"Undelivered {message.kind.value} cannot go back to actor {message.sender}",
                        level=LogLevel.DEBUG,
                    )
                )
                continue
            returned += 1
            log_event(
                LogEntry(
                    event_type=EventType.DELIVERY_RETURNED,
                    actor_index=index,
                    payload={"to": message.sender, "kind": message.kind.value},
                    message=f"Queued {message.kind.value} for actor {index} returned to actor {message.sender}",
                    level=LogLevel.DEBUG,
                )
            )
        return returned

    def _deliver(self, target_index: int, message: Message) -> None:
        address = self.addresses.get(target_index)
        mailbox = self._mailboxes.get(address)
        if mailbox is None:
            raise DeliveryFailure(f"No mailbox for actor {target_index}")
        mailbox.put(message)

    def send(self, target_index: int, message: Message) -> bool:
        """Deliver `message` to `target_index`.

        Retries up to `max_attempts` with exponential backoff, then gives up
        and returns False so the caller can treat the target as inactive.
        """
        max_attempts = self.config.max_attempts
        for attempt in range(1, max_attempts + 1):
            with self._lock:
                self.attempts += 1
            try:
                self._deliver(target_index, message)
            except DeliveryFailure as exc:
                if attempt == max_attempts:
                    with self._lock:
                        self.failures += 1
                    log_event(
                        LogEntry(
                            event_type=EventType.DELIVERY_FAILURE,
                            actor_index=message.sender,
                            payload={
                                "target": target_index,
                                "kind": message.kind.value,
                                "attempts": attempt,
                                "reason": str(exc),
                            },
                            message=f"{message.kind.value} to actor {target_index} undeliverable after {attempt} attempts",
                            level=LogLevel.WARNING,
                        )
                    )
                    return False

                delay = self.config.retry_backoff * (2 ** (attempt - 1))
                log_event(
                    LogEntry(
                        event_type=EventType.DELIVERY_RETRY,
                        actor_index=message.sender,
                        payload={"target": target_index, "attempt": attempt, "delay": delay},
                        message=f"Delivery to actor {target_index} failed, retry {attempt}/{max_attempts - 1}",
                        level=LogLevel.DEBUG,
                    )
                )
                self._sleep(delay)
            else:
                with self._lock:
                    self.sent[message.kind.value] += 1
                return True
        return False

    def pending(self) -> Dict[int, int]:
        """Queued message count per ring index."""
        return {
            index: self._mailboxes[address].pending()
            for index, address in self.addresses.items()
            if address in self._mailboxes
        }

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.sent)

    def indices(self) -> List[int]:
        return sorted(self.addresses)
