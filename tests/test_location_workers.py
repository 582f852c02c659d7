import threading
import time

from app.control_loops.location_workers import LocationWorkers


def test_work_for_one_location_runs_in_submission_order():
    workers = LocationWorkers(["stue"])
    seen = []

    for n in range(20):
        workers.submit("stue", seen.append, n)

    assert workers.shutdown(2.0) is True
    assert seen == list(range(20))


def test_slow_location_does_not_block_another():
    workers = LocationWorkers(["slow", "fast"])
    release = threading.Event()
    done = threading.Event()

    workers.submit("slow", release.wait, 2.0)
    workers.submit("fast", done.set)

    assert done.wait(1.0)
    release.set()
    assert workers.shutdown(2.0) is True


def test_membership():
    workers = LocationWorkers(["stue"])
    assert "stue" in workers
    assert "garage" not in workers
    workers.shutdown(0.1)


def test_no_work_accepted_after_shutdown():
    workers = LocationWorkers(["stue"])
    workers.shutdown(0.1)

    assert workers.submit("stue", time.sleep, 0) is None


def test_shutdown_reports_unfinished_work():
    workers = LocationWorkers(["stue"])
    release = threading.Event()
    workers.submit("stue", release.wait, 5.0)

    assert workers.shutdown(0.05) is False
    release.set()


def test_worker_exception_is_contained():
    workers = LocationWorkers(["stue"])
    seen = []

    def boom():
        raise RuntimeError("boom")

    workers.submit("stue", boom)
    workers.submit("stue", seen.append, "after")

    assert workers.shutdown(2.0) is True
    assert seen == ["after"]
