import fnmatch

import pytest

from kycflow.core.engine import WorkflowEngine
from kycflow.core.scheduler import Scheduler
from kycflow.core.steps import StepSequence
from kycflow.store.models import WorkflowState
from kycflow.store.session_binder import SessionBinder
from kycflow.store.workflow_repo import WorkflowStore


class FakeRedis:
    """
    Dict-backed stand-in for the handful of redis-py calls the service makes.
    TTLs are recorded, not enforced. Put a method name into `fail` to make
    that call raise ConnectionError.
    """

    def __init__(self):
        self.data = {}
        self.ttl = {}
        self.fail = set()

    def _check(self, op):
        if op in self.fail:
            raise ConnectionError(f"redis {op} unavailable")

    def get(self, key):
        self._check("get")
        return self.data.get(key)

    def set(self, key, value, ex=None, px=None, nx=False):
        self._check("set")
        if nx and key in self.data:
            return None
        self.data[key] = value if isinstance(value, str) else str(value)
        if ex is not None:
            self.ttl[key] = int(ex)
        else:
            self.ttl.pop(key, None)
        return True

    def delete(self, *keys):
        self._check("delete")
        n = 0
        for k in keys:
            if self.data.pop(k, None) is not None:
                n += 1
            self.ttl.pop(k, None)
        return n

    def exists(self, *keys):
        self._check("exists")
        return sum(1 for k in keys if k in self.data)

    def incr(self, key, amount=1):
        self._check("incr")
        value = int(self.data.get(key) or 0) + int(amount)
        self.data[key] = str(value)
        return value

    def eval(self, script, numkeys, key, token):
        # compare-and-delete, the only script the service runs
        if self.data.get(key) == token:
            return self.delete(key)
        return 0

    def keys(self, pattern="*"):
        return [k for k in self.data if fnmatch.fnmatch(k, pattern)]

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def delete(self, *keys):
        self.ops.append(("delete", keys))
        return self

    def execute(self):
        self.redis._check("execute")
        out = [getattr(self.redis, op)(*args) for op, args in self.ops]
        self.ops = []
        return out


class ManualClock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.now = start_ms

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += int(ms)


SEQ = StepSequence(["A", "B", "C"])


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sequence():
    return SEQ


@pytest.fixture
def store(fake_redis, sequence):
    return WorkflowStore(fake_redis, "p1", sequence, binder=SessionBinder(fake_redis, "p1", ttl_sec=60))


@pytest.fixture
def make_engine(store, clock):
    """Build a fresh engine (one page load) over the shared store and clock."""

    def _make(**kwargs):
        opts = dict(
            sensitive_steps=[],
            stay_on_failure_steps=[],
            navigation_delay_ms=100,
            completion_redirect_delay_ms=1000,
            completion_navigate_delay_ms=400,
            expiry_countdown_ms=10_000,
            base_path="/flow",
            html_suffix=False,
        )
        opts.update(kwargs)
        return WorkflowEngine(store, scheduler=Scheduler(clock), **opts)

    return _make


@pytest.fixture
def advance(clock):
    """Move the manual clock forward and run whatever became due."""

    def _advance(engine, ms):
        clock.advance(ms)
        return engine.tick()

    return _advance


@pytest.fixture
def seed():
    """Write a WorkflowState, step data and a bound session straight into a store."""

    def _seed(store, statuses, data_steps=(), ledger=(), current="C", session="sess-1"):
        st = WorkflowState.initial(store.sequence)
        st.steps.update(statuses)
        st.currentStep = current
        for s in ledger:
            st.previouslyCompletedSteps[s] = True
        store.save(st)
        for s in data_steps:
            store.save_step_data(s, {"field": s})
        if session:
            store.binder.set_session_id(session)
        return st

    return _seed
