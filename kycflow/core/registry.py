"""
In-process cache of one WorkflowEngine per profile.

An engine stands for one page load. get(..., reload=True) tears the cached
engine down and builds a fresh one from the durable store.
"""
import threading
from typing import Callable, Dict, Optional

from kycflow.core.engine import WorkflowEngine
from kycflow.core.scheduler import Clock, Scheduler
from kycflow.core.steps import StepSequence
from kycflow.observability.logging import log
from kycflow.settings import settings
from kycflow.store.redis_conn import get_redis
from kycflow.store.session_binder import SessionBinder
from kycflow.store.workflow_repo import WorkflowStore


def default_sequence() -> StepSequence:
    sequence = StepSequence(settings.STEP_SEQUENCE)
    for name in ("SENSITIVE_STEPS", "STAY_ON_FAILURE_STEPS"):
        unknown = [s for s in getattr(settings, name) if s not in sequence]
        if unknown:
            raise ValueError(f"{name} references unknown steps: {unknown}")
    return sequence


def build_engine(profile_id: str, redis=None, sequence: Optional[StepSequence] = None,
                 clock: Optional[Clock] = None) -> WorkflowEngine:
    r = redis if redis is not None else get_redis()
    seq = sequence or default_sequence()
    binder = SessionBinder(r, profile_id)
    store = WorkflowStore(r, profile_id, seq, binder=binder)
    return WorkflowEngine(store, scheduler=Scheduler(clock))


class EngineRegistry:
    def __init__(self, factory: Callable[..., WorkflowEngine] = build_engine):
        self._factory = factory
        self._engines: Dict[str, WorkflowEngine] = {}
        self._lock = threading.Lock()

    def get(self, profile_id: str, redis=None, reload: bool = False) -> WorkflowEngine:
        with self._lock:
            engine = self._engines.get(profile_id)
            if engine is not None and not reload:
                return engine
            if engine is not None:
                engine.teardown()
                log(event="engine_reloaded", profileId=profile_id)
            engine = self._factory(profile_id, redis=redis)
            self._engines[profile_id] = engine
            return engine

    def peek(self, profile_id: str) -> Optional[WorkflowEngine]:
        with self._lock:
            return self._engines.get(profile_id)

    def discard(self, profile_id: str) -> None:
        with self._lock:
            engine = self._engines.pop(profile_id, None)
        if engine is not None:
            engine.teardown()

    def clear(self) -> None:
        with self._lock:
            engines, self._engines = list(self._engines.values()), {}
        for engine in engines:
            engine.teardown()

    def __len__(self) -> int:
        return len(self._engines)


registry = EngineRegistry()
