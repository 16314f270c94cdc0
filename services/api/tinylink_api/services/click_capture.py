"""Click capture on the redirect path.

Building the event is synchronous; publishing runs in a background task so
the redirect never waits on Redis.
"""

import asyncio
from dataclasses import dataclass

import structlog
from fastapi import Request
from tinylink_shared import ClickEvent

from tinylink_api.schemas.link import CachedLink
from tinylink_api.services.click_publisher import ClickEventPublisher, get_publisher
from tinylink_api.services.user_agent import classify_user_agent

logger = structlog.get_logger()


def get_client_ip(request: Request) -> str | None:
    """Extract client IP address from request.

    Handles X-Forwarded-For header for requests behind proxies/load balancers.
    """
    # X-Forwarded-For can contain multiple IPs: client, proxy1, proxy2
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return None


@dataclass(frozen=True)
class RequestMetadata:
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestMetadata":
        return cls(
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            referrer=request.headers.get("Referer"),
        )


class ClickCapture:
    """Turns resolved redirects into published click events.

    Publish tasks are held in a set until they finish so they are not
    garbage collected mid-flight, and so shutdown can drain them.
    """

    def __init__(self, publisher: ClickEventPublisher | None = None):
        self._publisher = publisher
        self._tasks: set[asyncio.Task] = set()

    @property
    def publisher(self) -> ClickEventPublisher:
        if self._publisher is None:
            self._publisher = get_publisher()
        return self._publisher

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @staticmethod
    def build_event(link: CachedLink, metadata: RequestMetadata) -> ClickEvent:
        ua_info = classify_user_agent(metadata.user_agent)
        return ClickEvent(
            short_link_id=link.link_id,
            workspace_id=link.workspace_id,
            short_code=link.short_code,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent,
            referrer=metadata.referrer,
            device_type=ua_info.device_type,
            browser=ua_info.browser,
            os=ua_info.os,
        )

    def record_click(self, link: CachedLink, metadata: RequestMetadata) -> None:
        """Schedule publication of a click event and return immediately.

        Never raises: losing a click must not fail the redirect.
        """
        try:
            event = self.build_event(link, metadata)
            task = asyncio.create_task(self.publisher.publish(event))
        except Exception as e:
            logger.warning(
                "Failed to capture click event",
                short_code=link.short_code,
                error=str(e),
            )
            return

        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Click publish task failed", error=str(exc))

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight publishes, cancelling whatever is left after ``timeout``."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        logger.info("Click capture drained", completed=len(done), cancelled=len(pending))


# Global capture instance
_capture: ClickCapture | None = None


def get_click_capture() -> ClickCapture:
    """FastAPI dependency returning the global click capture."""
    global _capture
    if _capture is None:
        _capture = ClickCapture()
    return _capture
