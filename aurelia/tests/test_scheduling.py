from datetime import datetime

import pytest
from apscheduler.jobstores.base import JobLookupError

from concierge.scheduling import DeferredTask


class FakeJob:
    def __init__(self, id):
        self.id = id


class FakeScheduler:
    def __init__(self):
        self.jobs = {}

    def add_job(self, func, **kw):
        self.jobs[kw["id"]] = (func, kw)
        return FakeJob(kw["id"])

    def remove_job(self, job_id):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def get_job(self, job_id):
        return self.jobs.get(job_id)


def test_deferred_task_schedules_once_and_cancels_once():
    scheduler = FakeScheduler()
    when = datetime(2030, 1, 1, 9, 0)
    task = DeferredTask.schedule(scheduler, "concierge.scheduling:publish_scheduled_post",
                                 run_at=when, args=["post-1"], job_id="social-post-post-1", jobstore="persistent")
    func, kw = scheduler.jobs["social-post-post-1"]
    assert kw["run_date"] == when
    assert kw["args"] == ["post-1"]
    assert kw["jobstore"] == "persistent"
    assert kw["replace_existing"] is True
    assert task.pending

    assert task.cancel() is True
    assert task.cancel() is False
    assert not task.pending


def test_cancel_after_run_is_noop():
    scheduler = FakeScheduler()
    task = DeferredTask.schedule(scheduler, print, delay=5, job_id="once")
    scheduler.jobs.clear()
    assert task.cancel() is False


def test_schedule_needs_exactly_one_time():
    with pytest.raises(ValueError):
        DeferredTask.schedule(FakeScheduler(), print, job_id="x")
    with pytest.raises(ValueError):
        DeferredTask.schedule(FakeScheduler(), print, delay=1, run_at=datetime(2030, 1, 1), job_id="x")


def test_schedule_post_registers_persistent_job(app, member):
    from concierge.social import service

    app.scheduler = FakeScheduler()
    post = service.create_post(member.id, "linkedin", "Opening night")
    service.schedule_post(post, datetime(2030, 5, 1, 18, 0))
    assert f"social-post-{post.id}" in app.scheduler.jobs

    service.cancel_post(post)
    assert app.scheduler.jobs == {}


def test_cron_route_requires_key(app, client):
    app.config["CRON_SECRET"] = "s3cret"
    assert client.post("/__cron__/run/minutely").status_code == 403
    assert client.post("/__cron__/run/weekly?key=s3cret").status_code == 404
    assert client.post("/__cron__/run/minutely?key=s3cret").status_code == 200


def test_app_is_bound_before_scheduler_starts(app, monkeypatch):
    from concierge import scheduling

    seen = {}

    class StartingScheduler(FakeScheduler):
        def __init__(self, **kw):
            super().__init__()

        def start(self):
            seen["app"] = scheduling._app
            seen["scheduler"] = getattr(app, "scheduler", None)

        def shutdown(self, wait=True):
            pass

    monkeypatch.setattr(scheduling, "BackgroundScheduler", StartingScheduler)
    monkeypatch.setattr(scheduling, "_app", None)
    monkeypatch.setattr(scheduling.atexit, "register", lambda fn: fn)
    monkeypatch.delenv("WERKZEUG_RUN_MAIN", raising=False)

    scheduler = scheduling.init_scheduler(app)
    assert seen["app"] is app
    assert seen["scheduler"] is scheduler
