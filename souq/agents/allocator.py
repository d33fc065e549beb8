"""
Task Allocator and Worker Agents
Dispatches allocated tasks to worker agents over the message bus.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..messaging import Message, MessageBus, MessagingError, Performative
from .allocation import AllocationTask, TaskAllocator
from .base import Agent

logger = logging.getLogger(__name__)

TaskHandler = Callable[[str, Dict[str, Any]], Any]


class WorkerAgent(Agent):
    """
    Executes tasks.

    REQUEST {"task_id", "kind", "payload"} -> INFORM {"task_id", "result"}
    or FAILURE {"task_id", "error"}. The handler may be sync or async.
    """

    role = "worker"

    def __init__(self, name: str, bus: MessageBus, handler: TaskHandler, capacity: int = 1):
        super().__init__(name, bus)
        self.handler = handler
        self.capacity = capacity
        self.completed = 0
        self.handlers = {Performative.REQUEST: self.on_task}

    async def on_task(self, message: Message) -> Message:
        task_id = message.body.get("task_id")
        kind = message.body.get("kind")
        payload = message.body.get("payload") or {}

        try:
            result = self.handler(kind, payload)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(
                f"Worker {self.name} failed task {task_id}: {e}",
                extra={"agent": self.name},
            )
            return message.reply(Performative.FAILURE, {"task_id": task_id, "error": str(e)})

        self.completed += 1
        return message.reply(Performative.INFORM, {"task_id": task_id, "result": result})

    def describe(self):
        info = super().describe()
        info["completed"] = self.completed
        info["capacity"] = self.capacity
        return info


class TaskAllocatorAgent(Agent):
    """
    Spreads tasks across workers.

    Each dispatch is a request with `task_timeout`. A timeout, refusal,
    failure or delivery error counts as a failed attempt and the task is
    re-assigned to another worker.
    """

    role = "allocator"

    def __init__(
        self,
        name: str,
        bus: MessageBus,
        workers: Iterable[Union[str, WorkerAgent]] = (),
        max_attempts: int = 3,
        task_timeout: float = 5.0,
    ):
        super().__init__(name, bus)
        self.allocator = TaskAllocator(max_attempts=max_attempts)
        self.task_timeout = task_timeout
        self._dispatch_lock = asyncio.Lock()
        self.handlers = {
            Performative.INFORM: self.on_late_reply,
            Performative.FAILURE: self.on_late_reply,
        }

        for worker in workers:
            if isinstance(worker, WorkerAgent):
                self.allocator.add_worker(worker.name, worker.capacity)
            else:
                self.allocator.add_worker(worker)

    def add_worker(self, name: str, capacity: int = 1) -> None:
        self.allocator.add_worker(name, capacity)

    def submit(self, kind: str, payload: Optional[Dict[str, Any]] = None) -> AllocationTask:
        task = self.allocator.submit(kind, payload)
        logger.info(f"Queued task {task.task_id[:8]} ({kind})", extra={"agent": self.name})
        return task

    async def dispatch_pending(self) -> List[AllocationTask]:
        """
        Dispatch every assignable task and wait for the outcomes.

        Returns:
            Tasks dispatched in this pass
        """
        dispatched: List[AllocationTask] = []
        inflight = []
        while True:
            assignment = self.allocator.next_assignment()
            if assignment is None:
                break
            task, worker = assignment
            dispatched.append(task)
            inflight.append(self._dispatch(task, worker))

        if inflight:
            await asyncio.gather(*inflight)
        return dispatched

    async def run_until_complete(self) -> Dict[str, int]:
        """
        Dispatch until no task is pending or assigned.

        Returns:
            Task status summary
        """
        async with self._dispatch_lock:
            while self.allocator.has_open_tasks():
                dispatched = await self.dispatch_pending()
                if not dispatched:
                    # Pending tasks remain but no worker can take them
                    logger.warning(
                        "No worker available for pending tasks", extra={"agent": self.name}
                    )
                    break
        return self.allocator.summary()

    async def _dispatch(self, task: AllocationTask, worker: str) -> None:
        request = self.message(
            worker,
            Performative.REQUEST,
            {"task_id": task.task_id, "kind": task.kind, "payload": task.payload},
        )
        try:
            reply = await self.request(request, timeout=self.task_timeout)
        except MessagingError as e:
            self.allocator.fail(task.task_id, str(e))
            return

        if reply.performative == Performative.INFORM:
            self.allocator.complete(task.task_id, reply.body.get("result"))
        else:
            error = reply.body.get("error") or reply.performative.value
            self.allocator.fail(task.task_id, error)

    async def on_late_reply(self, message: Message) -> None:
        # Replies that arrive after their request timed out; the task was already re-assigned
        logger.info(
            f"Late {message.performative.value} from {message.sender} "
            f"for task {message.body.get('task_id')}",
            extra={"agent": self.name},
        )
        return None

    def describe(self):
        info = super().describe()
        info["tasks"] = self.allocator.summary()
        info["workers"] = self.allocator.loads()
        return info
