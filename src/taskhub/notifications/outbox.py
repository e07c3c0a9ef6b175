"""In-process notification queue and its background worker.

Learn: Runs as a long-lived task in the FastAPI lifespan, like any other
background worker. Handlers call outbox.enqueue() (never blocks, never
raises); run_loop() pulls messages off the queue and hands them to the
sender. Every delivery failure is logged and dropped — no retries, the
messages are courtesy emails.

Usage:
    outbox = NotificationOutbox(SendGridSender())
    task = asyncio.create_task(outbox.run_loop())
    ...
    outbox.stop(); await task
"""

import asyncio
from typing import Optional, Protocol

import structlog

from taskhub.notifications.mailer import EmailMessage, SendGridSender

logger = structlog.get_logger()


class Sender(Protocol):
    async def send(self, message: EmailMessage) -> bool: ...


class NotificationOutbox:
    def __init__(
        self,
        sender: Optional[Sender] = None,
        maxsize: int = 1000,
        poll_interval: float = 1.0,
    ):
        self.sender = sender or SendGridSender()
        self.poll_interval = poll_interval
        self._queue: asyncio.Queue[EmailMessage] = asyncio.Queue(maxsize=maxsize)
        # Set here, not in run_loop(), so a stop() that lands before the
        # worker is first scheduled still ends the loop
        self._running = True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, message: EmailMessage) -> bool:
        """Queue a message for delivery. Returns False if the queue is full."""
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("taskhub.notification_dropped", kind=message.kind, reason="queue_full")
            return False
        logger.debug("taskhub.notification_queued", kind=message.kind)
        return True

    async def deliver(self, message: EmailMessage) -> bool:
        """Deliver one message, swallowing and logging any failure."""
        try:
            return await self.sender.send(message)
        except Exception as e:
            logger.warning("taskhub.notification_failed", kind=message.kind, error=str(e))
            return False

    async def drain(self) -> int:
        """Deliver everything currently queued. Returns how many were attempted."""
        count = 0
        while not self._queue.empty():
            message = self._queue.get_nowait()
            await self.deliver(message)
            self._queue.task_done()
            count += 1
        return count

    async def run_loop(self) -> None:
        """Main worker loop — wait for messages and deliver them."""
        logger.info("taskhub.notification_worker_started")

        while self._running:
            try:
                message = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            await self.deliver(message)
            self._queue.task_done()

        # Flush what was queued before shutdown
        await self.drain()
        logger.info("taskhub.notification_worker_stopped")

    def stop(self) -> None:
        """Signal the worker to stop after the current message."""
        self._running = False


# Process-wide outbox (worker started in main.lifespan)
outbox = NotificationOutbox()


def get_outbox() -> NotificationOutbox:
    """FastAPI dependency — overridden in tests."""
    return outbox
