from __future__ import annotations

import asyncio
import dataclasses
import logging
import typing

T = typing.TypeVar("T")

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class _TaskReferencer:
    """Holds strong references to tasks until they are done.  This compensates for
    asyncio holding only weak references.
    """

    tasks: set[asyncio.Task[object]] = dataclasses.field(default_factory=set)

    def create_task(
        self,
        coroutine: typing.Coroutine[object, object, T],
        *,
        name: typing.Optional[str] = None,
    ) -> asyncio.Task[T]:
        task = asyncio.create_task(coroutine, name=name)
        task.add_done_callback(self._task_done)
        self.tasks.add(task)
        return task

    def _task_done(self, task: asyncio.Task[object]) -> None:
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Task %s failed", task.get_name(), exc_info=task.exception())


_global_task_referencer = _TaskReferencer()

create_referenced_task = _global_task_referencer.create_task
