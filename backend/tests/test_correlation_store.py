def _task(script: str = "return 1;", **kwargs):
    from docbridge.services.correlation_store import ExecutionTask

    return ExecutionTask(target="word", script=script, **kwargs)


def test_enqueue_refuses_correlation_id_collision():
    from docbridge.services.correlation_store import CorrelationStore

    store = CorrelationStore()
    first = _task(correlation_id="abc")
    assert store.enqueue(first) is True
    assert store.enqueue(_task("other", correlation_id="abc")) is False
    assert store.get("abc") is first
    assert len(store) == 1


def test_status_only_moves_forward():
    from docbridge.services.correlation_store import (
        STATUS_COMPLETED,
        STATUS_EXECUTING,
        CorrelationStore,
    )

    store = CorrelationStore()
    task = _task()
    store.enqueue(task)

    assert store.mark_executing(task.correlation_id) is True
    assert task.status == STATUS_EXECUTING
    assert store.mark_resolved(task.correlation_id, success=True) is True
    assert task.status == STATUS_COMPLETED
    # Terminal: neither back to executing nor flipped to failed.
    assert store.mark_executing(task.correlation_id) is False
    assert store.mark_resolved(task.correlation_id, success=False) is False
    assert task.status == STATUS_COMPLETED
    assert store.mark_executing("missing") is False


def test_claim_pending_hands_each_task_out_once_in_creation_order():
    from docbridge.services.correlation_store import CorrelationStore

    store = CorrelationStore()
    late = _task("b", created_at=200.0)
    early = _task("a", created_at=100.0)
    store.enqueue(late)
    store.enqueue(early)

    assert [t.script for t in store.list_pending()] == ["a", "b"]
    assert [t.script for t in store.claim_pending()] == ["a", "b"]
    assert store.claim_pending() == []
    assert store.list_pending() == []


def test_sweep_expired_drops_tasks_regardless_of_status():
    from docbridge.services.correlation_store import CorrelationStore

    store = CorrelationStore()
    old_pending = _task("a", created_at=1000.0)
    old_done = _task("b", created_at=1000.0)
    fresh = _task("c", created_at=1290.0)
    for task in (old_pending, old_done, fresh):
        store.enqueue(task)
    store.mark_resolved(old_done.correlation_id, success=False)

    assert store.sweep_expired(300, now=1400.0) == 2
    assert store.get(fresh.correlation_id) is fresh
    assert store.get(old_pending.correlation_id) is None


def test_to_event_uses_wire_field_names():
    task = _task("x", description="d", correlation_id="cid")
    assert task.to_event() == {"correlationId": "cid", "target": "word", "script": "x", "description": "d"}
