import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import async_engine
from app.schemas.openapi_schemas import QueueStatus
from app.services.queue_estimator import get_queue_status

queue_logger = logging.getLogger("queue")

QueueStatusCallback = Callable[[QueueStatus], Awaitable[None]]


class QueueStatusPoller:
    """
    One poller per user. Recomputes the queue status on start and then every
    poll interval, handing each snapshot to ``on_status``.
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine,
        user_uuid: UUID,
        on_status: QueueStatusCallback,
        poll_sec: Optional[float] = None,
    ):
        self.engine = engine
        self.user_uuid = user_uuid
        self.on_status = on_status
        self.poll_sec = settings.queue_poll_interval_seconds if poll_sec is None else poll_sec
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f"QueuePoller-{self.user_uuid}")
        return self._task

    async def stop(self):
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def poll_once(self) -> QueueStatus:
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            status = await get_queue_status(session, self.user_uuid)
        await self.on_status(status)
        return status

    async def _run(self):
        queue_logger.info(f'Queue poller started for user {self.user_uuid} every {self.poll_sec}s')

        while not self._stop.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                queue_logger.exception(f'Queue poll error for user {self.user_uuid}: {e}')

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_sec)
            except asyncio.TimeoutError:
                pass

        queue_logger.info(f'Queue poller stopped for user {self.user_uuid}')


class QueuePollerRegistry:
    """Keeps one running poller per watching user and its latest snapshot."""

    def __init__(self, engine: AsyncEngine, poll_sec: Optional[float] = None):
        self.engine = engine
        self.poll_sec = poll_sec
        self._pollers: Dict[UUID, QueueStatusPoller] = {}
        self._latest: Dict[UUID, QueueStatus] = {}

    def is_watching(self, user_uuid: UUID) -> bool:
        poller = self._pollers.get(user_uuid)
        return poller is not None and poller.running

    def latest(self, user_uuid: UUID) -> Optional[QueueStatus]:
        return self._latest.get(user_uuid)

    def subscribe(self, user_uuid: UUID) -> QueueStatusPoller:
        poller = self._pollers.get(user_uuid)
        if poller is None:
            async def remember(status: QueueStatus):
                self._latest[user_uuid] = status

            poller = QueueStatusPoller(
                engine=self.engine, user_uuid=user_uuid, on_status=remember, poll_sec=self.poll_sec
            )
            self._pollers[user_uuid] = poller
        poller.start()
        return poller

    async def unsubscribe(self, user_uuid: UUID) -> bool:
        poller = self._pollers.pop(user_uuid, None)
        self._latest.pop(user_uuid, None)
        if poller is None:
            return False
        await poller.stop()
        return True

    async def stop_all(self):
        for user_uuid in list(self._pollers):
            await self.unsubscribe(user_uuid)
        queue_logger.info('All queue pollers stopped')


queue_pollers = QueuePollerRegistry(async_engine)


def get_queue_pollers() -> QueuePollerRegistry:
    return queue_pollers
