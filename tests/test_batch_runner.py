import asyncio

from data_services.features_service import FeaturesService
from data_services.segment_engine import SegmentEngine
from data_workers import growth_jobs
from data_workers.batch_runner import run_per_person, unique_ids


def test_unique_ids_keeps_first_occurrence_order():
    assert unique_ids(["b", "a", "b", None, "", "c", "a"]) == ["b", "a", "c"]


def test_failure_isolation_sequential():
    seen = []

    def work(pid):
        seen.append(pid)
        if pid == "bad":
            raise ValueError("broken person")

    report = run_per_person(["a", "bad", "b", "a"], work)

    assert seen == ["a", "bad", "b"]
    assert report.succeeded == ["a", "b"]
    assert report.failed == {"bad": "broken person"}
    assert report.to_dict() == {"total": 3, "succeeded": 2, "failed": {"bad": "broken person"}}


def test_failure_isolation_thread_pool():
    def work(pid):
        if pid.startswith("x"):
            raise RuntimeError(pid)

    report = run_per_person([f"p{i}" for i in range(10)] + ["x1", "x2"], work, max_workers=4)

    assert sorted(report.succeeded) == sorted(f"p{i}" for i in range(10))
    assert report.failed == {"x1": "x1", "x2": "x2"}


def test_empty_batch():
    report = run_per_person([], lambda pid: None)
    assert report.total == 0


def test_jobs_open_a_session_per_person(session, make_person):
    a = make_person(email="job-a@example.com")
    b = make_person(email="job-b@example.com")
    SegmentEngine(session).create_segment("Everyone", {})
    session.commit()

    features_report = growth_jobs.recompute_features([a.id, b.id], max_workers=1)
    segments_report = growth_jobs.evaluate_segments(max_workers=1)

    assert features_report.failed == {}
    assert sorted(segments_report.succeeded) == sorted([a.id, b.id])
    session.expire_all()
    assert FeaturesService(session).get_person_features(a.id) is not None
    assert SegmentEngine(session).segments.member_segment_ids(b.id) != set()


def test_run_job_async_offloads_to_executor():
    def job(ids, max_workers=None):
        return run_per_person(ids, lambda pid: None, max_workers=max_workers or 1)

    report = asyncio.run(growth_jobs.run_job_async(job, ["a", "b"], max_workers=2))

    assert sorted(report.succeeded) == ["a", "b"]
