from celery import Task

import worker.tasks as tasks


def test_outbox_task_delegates_to_the_lease_processor(monkeypatch):
    calls = []

    async def fake_process(outbox_id, lease_id):
        calls.append((outbox_id, lease_id))
        return False

    monkeypatch.setattr(tasks, "_process_outbox_event", fake_process)

    # a failed delivery is reported, not retried by Celery
    assert tasks.process_outbox_event("obx_1", "lease-1") is False
    assert calls == [("obx_1", "lease-1")]
    assert tasks.process_outbox_event.max_retries == Task.max_retries
