from unittest import mock

import pytest
import requests

from renderworker import __version__
from renderworker.client import HttpQueueClient


def response(status=200, json_data=None):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status
    resp.content = b"" if json_data is None else b"{...}"
    resp.json.return_value = json_data
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


@pytest.fixture
def session():
    s = mock.Mock(spec=requests.Session)
    s.headers = {}
    return s


@pytest.fixture
def http_get():
    with mock.patch("renderworker.client.requests.get") as get:
        yield get


def test_headers_identify_worker(session):
    HttpQueueClient("http://queue:3000/", "s3cret", name="node-1", session=session)
    assert session.headers["nexrender-secret"] == "s3cret"
    assert session.headers["nexrender-name"] == "node-1"
    assert session.headers["user-agent"] == f"renderworker/{__version__}"


def test_pickup_returns_job(session, http_get):
    http_get.return_value = response(json_data={"uid": "J1", "state": "queued"})
    client = HttpQueueClient("http://queue:3000", session=session)

    job = client.pickup_job()

    assert job.uid == "J1"
    assert http_get.call_args[0][0] == "http://queue:3000/api/v1/jobs/pickup"


def test_pickup_with_tags(session, http_get):
    http_get.return_value = response(status=204)
    client = HttpQueueClient("http://queue:3000", session=session)

    assert client.pickup_job("gpu,ae") is None
    assert http_get.call_args[0][0] == "http://queue:3000/api/v1/jobs/pickup/gpu%2Cae"


def test_pickup_empty_body_is_no_job(session, http_get):
    http_get.return_value = response(json_data={})
    client = HttpQueueClient("http://queue:3000", session=session)
    assert client.pickup_job() is None


def test_pickup_http_error_raises(session, http_get):
    http_get.return_value = response(status=500)
    client = HttpQueueClient("http://queue:3000", session=session)
    with pytest.raises(requests.HTTPError):
        client.pickup_job()


def test_pickup_does_not_use_shared_session(session, http_get):
    http_get.return_value = response(status=204)
    client = HttpQueueClient("http://queue:3000", "s3cret", session=session)

    client.pickup_job()

    session.get.assert_not_called()
    assert http_get.call_args[1]["headers"]["nexrender-secret"] == "s3cret"


def test_update_job_puts_state(session):
    session.put.return_value = response(json_data={"uid": "J1"})
    client = HttpQueueClient("http://queue:3000", session=session)

    assert client.update_job("J1", {"state": "started"}) == {"uid": "J1"}
    args, kwargs = session.put.call_args
    assert args[0] == "http://queue:3000/api/v1/jobs/J1"
    assert kwargs["json"] == {"state": "started"}


def test_host_is_required():
    with pytest.raises(ValueError):
        HttpQueueClient("")
