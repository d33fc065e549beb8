"""
Task Allocation
Least-loaded task assignment with round-robin tie-breaking and
bounded re-assignment on failure.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import uuid4

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AllocationTask:
    task_id: str
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    assignee: Optional[str] = None
    tried: Set[str] = field(default_factory=set)
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "kind": self.kind,
            "payload": self.payload,
            "status": self.status.value,
            "attempts": self.attempts,
            "assignee": self.assignee,
            "tried": sorted(self.tried),
            "result": self.result,
            "error": self.error,
        }


@dataclass
class WorkerSlot:
    name: str
    capacity: int = 1
    load: int = 0

    @property
    def utilization(self) -> float:
        return self.load / self.capacity

    @property
    def has_capacity(self) -> bool:
        return self.load < self.capacity


class TaskAllocator:
    """
    Assigns tasks to workers.

    A worker's load never exceeds its capacity. A failed task goes back to
    PENDING and avoids the workers that already failed it until all workers
    have been tried, at most `max_attempts` times.
    """

    def __init__(self, max_attempts: int = 3):
        self.max_attempts = max_attempts
        self._workers: "OrderedDict[str, WorkerSlot]" = OrderedDict()
        self._tasks: "OrderedDict[str, AllocationTask]" = OrderedDict()
        self._last_worker: Optional[str] = None

    # === Workers ===

    def add_worker(self, name: str, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if name in self._workers:
            self._workers[name].capacity = capacity
        else:
            self._workers[name] = WorkerSlot(name=name, capacity=capacity)

    def remove_worker(self, name: str) -> List[AllocationTask]:
        """
        Remove a worker and return its in-flight tasks to PENDING.

        Returns:
            Tasks that were re-queued
        """
        self._workers.pop(name, None)
        requeued = []
        for task in self._tasks.values():
            if task.status == TaskStatus.ASSIGNED and task.assignee == name:
                task.status = TaskStatus.PENDING
                task.assignee = None
                requeued.append(task)
        if self._last_worker == name:
            self._last_worker = None
        return requeued

    @property
    def workers(self) -> List[str]:
        return list(self._workers)

    # === Tasks ===

    def submit(self, kind: str, payload: Optional[Dict[str, Any]] = None) -> AllocationTask:
        task = AllocationTask(task_id=uuid4().hex, kind=kind, payload=dict(payload or {}))
        self._tasks[task.task_id] = task
        return task

    def get(self, task_id: str) -> AllocationTask:
        return self._tasks[task_id]

    def tasks(self, status: Optional[TaskStatus] = None) -> List[AllocationTask]:
        if status is None:
            return list(self._tasks.values())
        return [t for t in self._tasks.values() if t.status == status]

    def has_open_tasks(self) -> bool:
        return any(t.status in (TaskStatus.PENDING, TaskStatus.ASSIGNED) for t in self._tasks.values())

    def next_assignment(self) -> Optional[Tuple[AllocationTask, str]]:
        """
        Assign the oldest assignable PENDING task.

        Returns:
            (task, worker name), or None if nothing can be assigned now
        """
        for task in self._tasks.values():
            if task.status != TaskStatus.PENDING:
                continue
            worker = self._choose_worker(task)
            if worker is None:
                continue

            worker.load += 1
            task.status = TaskStatus.ASSIGNED
            task.assignee = worker.name
            task.attempts += 1
            self._last_worker = worker.name

            logger.debug(
                f"Assigned task {task.task_id[:8]} ({task.kind}) to {worker.name} "
                f"(attempt {task.attempts}, load {worker.load}/{worker.capacity})"
            )
            return task, worker.name
        return None

    def complete(self, task_id: str, result: Any = None) -> AllocationTask:
        task = self._tasks[task_id]
        self._release(task)
        task.status = TaskStatus.DONE
        task.result = result
        task.error = None
        return task

    def fail(self, task_id: str, error: str) -> AllocationTask:
        """
        Record a failed attempt.

        The task returns to PENDING while attempts remain, otherwise FAILED.
        """
        task = self._tasks[task_id]
        if task.assignee:
            task.tried.add(task.assignee)
        self._release(task)
        task.error = error

        if task.attempts >= self.max_attempts:
            task.status = TaskStatus.FAILED
            logger.warning(f"Task {task.task_id[:8]} failed after {task.attempts} attempts: {error}")
        else:
            task.status = TaskStatus.PENDING
            if self._workers and set(self._workers) <= task.tried:
                task.tried.clear()
            logger.info(f"Task {task.task_id[:8]} will be re-assigned: {error}")
        return task

    # === Reporting ===

    def loads(self) -> Dict[str, Dict[str, int]]:
        return {
            name: {"load": slot.load, "capacity": slot.capacity}
            for name, slot in self._workers.items()
        }

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in self._tasks.values():
            counts[task.status.value] += 1
        counts["total"] = len(self._tasks)
        return counts

    # === Internals ===

    def _release(self, task: AllocationTask) -> None:
        if task.status == TaskStatus.ASSIGNED and task.assignee in self._workers:
            slot = self._workers[task.assignee]
            slot.load = max(0, slot.load - 1)
        task.assignee = None

    def _round_robin_order(self) -> List[WorkerSlot]:
        slots = list(self._workers.values())
        if self._last_worker in self._workers:
            start = list(self._workers).index(self._last_worker) + 1
            slots = slots[start:] + slots[:start]
        return slots

    def _choose_worker(self, task: AllocationTask) -> Optional[WorkerSlot]:
        candidates = [
            slot
            for slot in self._round_robin_order()
            if slot.has_capacity and slot.name not in task.tried
        ]
        if not candidates:
            return None
        # min() keeps the first of equal utilizations, i.e. round-robin order
        return min(candidates, key=lambda slot: slot.utilization)
