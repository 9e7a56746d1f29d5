from kycflow.core.registry import EngineRegistry, build_engine


def _registry(fake_redis, clock):
    return EngineRegistry(lambda pid, redis=None: build_engine(pid, redis=fake_redis, clock=clock))


def test_engine_is_cached_per_profile(fake_redis, clock):
    reg = _registry(fake_redis, clock)
    a = reg.get("p1")
    assert reg.get("p1") is a
    assert reg.get("p2") is not a
    assert len(reg) == 2


def test_reload_builds_a_fresh_page_load(fake_redis, clock):
    reg = _registry(fake_redis, clock)
    old = reg.get("p1")
    old.enter_page("signin")
    old.complete_step("signin", {"mobile": "1"})
    assert old.scheduler.pending()

    new = reg.get("p1", reload=True)
    assert new is not old
    assert old.scheduler.pending() == []
    assert new.state.steps["signin"] == "completed"
    assert new.initialized is False


def test_discard_and_peek(fake_redis, clock):
    reg = _registry(fake_redis, clock)
    reg.get("p1")
    assert reg.peek("p1") is not None
    reg.discard("p1")
    assert reg.peek("p1") is None
    reg.get("p2")
    reg.clear()
    assert len(reg) == 0
