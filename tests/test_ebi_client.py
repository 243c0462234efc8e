"""Tests for the EBI JDispatcher FASTA client (HTTP mocked with respx)."""

from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
import respx

from xjoin.backends.ebi import FastaClient
from xjoin.errors import RemoteJobFailure, TransportError
from xjoin.jobs import run_job
from xjoin.models import JobStatus

BASE = "https://fasta.example.org/rest/fasta"


@pytest_asyncio.fixture
async def client():
    c = FastaClient("search@example.org", BASE)
    yield c
    await c.close()


@pytest.mark.asyncio
@respx.mock
async def test_submit_posts_form_with_email(client):
    route = respx.post(f"{BASE}/run").mock(return_value=httpx.Response(200, text="fasta-R20261019-1\n"))

    job_id = await client.submit({"program": "ssearch", "sequence": "MKT", "scores": 5})

    assert job_id == "fasta-R20261019-1"
    form = parse_qs(route.calls.last.request.content.decode())
    assert form["email"] == ["search@example.org"]
    assert form["program"] == ["ssearch"]
    assert form["scores"] == ["5"]


@pytest.mark.asyncio
@respx.mock
async def test_submit_http_error_is_transport_error(client):
    respx.post(f"{BASE}/run").mock(return_value=httpx.Response(500, text="oops"))

    with pytest.raises(TransportError):
        await client.submit({"sequence": "MKT"})


@pytest.mark.asyncio
@respx.mock
async def test_submit_connection_error_is_transport_error(client):
    respx.post(f"{BASE}/run").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(TransportError, match="refused"):
        await client.submit({"sequence": "MKT"})


@pytest.mark.asyncio
@respx.mock
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("QUEUED", JobStatus.RUNNING),
        ("RUNNING", JobStatus.RUNNING),
        ("FINISHED", JobStatus.DONE),
        ("NOT_FOUND", None),
    ],
)
async def test_poll_normalises_status(client, raw, expected):
    respx.get(f"{BASE}/status/job-1").mock(return_value=httpx.Response(200, text=raw))

    report = await client.poll("job-1")

    assert report.status is expected
    assert report.raw == raw


@pytest.mark.asyncio
@respx.mock
async def test_failed_poll_reads_error_output(client):
    respx.get(f"{BASE}/status/job-1").mock(return_value=httpx.Response(200, text="FAILURE"))
    respx.get(f"{BASE}/result/job-1/error").mock(return_value=httpx.Response(200, text="no hits\n"))

    report = await client.poll("job-1")

    assert report.status is JobStatus.FAILED
    assert report.message == "no hits"


@pytest.mark.asyncio
@respx.mock
async def test_failed_poll_without_error_output(client):
    respx.get(f"{BASE}/status/job-1").mock(return_value=httpx.Response(200, text="ERROR"))
    respx.get(f"{BASE}/result/job-1/error").mock(return_value=httpx.Response(404))

    report = await client.poll("job-1")

    assert report.status is JobStatus.FAILED
    assert "ERROR" in report.message


@pytest.mark.asyncio
@respx.mock
async def test_run_job_over_http(client, fasta_report):
    respx.post(f"{BASE}/run").mock(return_value=httpx.Response(200, text="job-1"))
    respx.get(f"{BASE}/status/job-1").mock(
        side_effect=[
            httpx.Response(200, text="QUEUED"),
            httpx.Response(200, text="RUNNING"),
            httpx.Response(200, text="FINISHED"),
        ]
    )
    respx.get(f"{BASE}/result/job-1/out").mock(return_value=httpx.Response(200, text=fasta_report))

    job = await run_job(client, {"sequence": "MKT"}, interval=0)

    assert job.status is JobStatus.DONE
    assert job.polls == 3
    assert job.payload.startswith("FASTA searches")


@pytest.mark.asyncio
@respx.mock
async def test_run_job_failure_over_http(client):
    respx.post(f"{BASE}/run").mock(return_value=httpx.Response(200, text="job-1"))
    respx.get(f"{BASE}/status/job-1").mock(return_value=httpx.Response(200, text="FAILURE"))
    respx.get(f"{BASE}/result/job-1/error").mock(return_value=httpx.Response(200, text="no hits"))

    with pytest.raises(RemoteJobFailure, match="no hits"):
        await run_job(client, {"sequence": "MKT"}, interval=0)
