"""
Explicit timer tasks with cancellation handles.

Time is read from an injectable clock (epoch ms). Nothing runs on its own:
run_due() executes every task whose due time has passed, in due order. The
service drives it at the start of each request; tests drive it by advancing
a manual clock.
"""
import itertools
from typing import Any, Callable, List, Optional

from kycflow.observability.logging import log
from kycflow.utils.time import now_ms

Clock = Callable[[], int]


class ScheduledTask:
    def __init__(self, task_id: int, due_ms: int, fn: Callable[..., Any], args: tuple, name: str = ""):
        self.id = task_id
        self.due_ms = due_ms
        self.fn = fn
        self.args = args
        self.name = name or getattr(fn, "__name__", "task")
        self.cancelled = False
        self.done = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else ("done" if self.done else "pending")
        return f"<ScheduledTask {self.name} due={self.due_ms} {state}>"


class Scheduler:
    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or now_ms
        self._ids = itertools.count(1)
        self._tasks: List[ScheduledTask] = []

    def now(self) -> int:
        return int(self.clock())

    def call_later(self, delay_ms: int, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledTask:
        task = ScheduledTask(next(self._ids), self.now() + max(0, int(delay_ms)), fn, args, name=name)
        self._tasks.append(task)
        return task

    def pending(self) -> List[ScheduledTask]:
        return sorted((t for t in self._tasks if t.active), key=lambda t: (t.due_ms, t.id))

    def run_due(self) -> int:
        """Run every due task, including ones scheduled by tasks that are already due."""
        ran = 0
        while True:
            now = self.now()
            due = [t for t in self.pending() if t.due_ms <= now]
            if not due:
                break
            task = due[0]
            task.done = True
            try:
                task.fn(*task.args)
            except Exception as e:
                log(event="scheduled_task_failed", task=task.name, error=str(e))
            ran += 1
        self._tasks = [t for t in self._tasks if t.active]
        return ran

    def cancel_all(self) -> int:
        n = 0
        for t in self._tasks:
            if t.active:
                t.cancel()
                n += 1
        self._tasks = []
        return n
