import threading

import pytest

from conftest import FakeQueueClient
from renderworker.acquisition import JobAcquisition
from renderworker.errors import AcquisitionError
from renderworker.shutdown import ShutdownPolicy


def acquisition(client, settings, cancel=None):
    return JobAcquisition(client, settings, ShutdownPolicy(settings), cancel)


def test_returns_job_after_empty_polls(make_settings):
    client = FakeQueueClient([None, {}, {"uid": "J1", "template": {"command": "x"}}])
    acq = acquisition(client, make_settings())

    job = acq.next_job()

    assert job.uid == "J1"
    assert job.template == {"command": "x"}
    assert acq.empty_returns == 0
    assert len(client.pickup_calls) == 3


def test_exit_on_empty_queue_after_tolerance(make_settings):
    client = FakeQueueClient()
    acq = acquisition(client, make_settings(exit_on_empty_queue=True, tolerate_empty_queues=2))

    assert acq.next_job() is None
    assert acq.empty_returns == 3
    assert len(client.pickup_calls) == 3


def test_empty_counter_resets_on_job(make_settings):
    client = FakeQueueClient([None, None, {"uid": "J1"}, None, None, None])
    acq = acquisition(client, make_settings(exit_on_empty_queue=True, tolerate_empty_queues=2))

    assert acq.next_job().uid == "J1"
    assert acq.next_job() is None
    assert len(client.pickup_calls) == 6


def test_pickup_error_is_absorbed(make_settings):
    client = FakeQueueClient([ConnectionError("refused"), {"uid": "J2"}])
    acq = acquisition(client, make_settings())

    assert acq.next_job().uid == "J2"


def test_pickup_error_propagates_with_stop_on_error(make_settings):
    client = FakeQueueClient([ConnectionError("refused")])
    acq = acquisition(client, make_settings(stop_on_error=True))

    with pytest.raises(AcquisitionError, match="refused"):
        acq.next_job()


def test_pickup_timeout_counts_as_failure(make_settings, release):
    def slow():
        release.wait(5)
        return {"uid": "LATE"}

    client = FakeQueueClient([slow])
    acq = acquisition(client, make_settings(pickup_timeout=0.05, stop_on_error=True))

    with pytest.raises(AcquisitionError, match="timed out"):
        acq.next_job()


def test_late_pickup_result_is_discarded(make_settings, release):
    def slow():
        release.wait(5)
        return {"uid": "LATE"}

    client = FakeQueueClient([slow, {"uid": "J3"}])
    acq = acquisition(client, make_settings(pickup_timeout=0.05))

    assert acq.next_job().uid == "J3"
    release.set()
    assert acq.empty_returns == 0


def test_tag_selector_is_passed(make_settings):
    client = FakeQueueClient([{"uid": "J1"}])
    acquisition(client, make_settings(tag_selector="gpu,ae")).next_job()
    assert client.pickup_calls == ["gpu,ae"]


def test_lock_file_deactivates_before_pickup(make_settings):
    settings = make_settings()
    settings.lock_file.touch()
    client = FakeQueueClient([{"uid": "J1"}])

    assert acquisition(client, settings).next_job() is None
    assert client.pickup_calls == []
    assert not settings.lock_file.exists()


def test_cancelled_acquisition_returns_none(make_settings):
    cancel = threading.Event()
    cancel.set()
    client = FakeQueueClient([{"uid": "J1"}])

    assert acquisition(client, make_settings(), cancel).next_job() is None
    assert client.pickup_calls == []
