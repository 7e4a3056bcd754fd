"""Tests for the D1 HTTP client against a local aiohttp server."""

import pytest
import pytest_asyncio
from aiohttp import ClientSession, test_utils, web

from picmirror.config import D1Config
from picmirror.d1 import D1Client
from picmirror.errors import RemoteServiceError, TransportError

CONFIG = D1Config(account_id="acc", database_id="db", api_token="secret-token")


class D1Stub:
    def __init__(self):
        self.requests = []
        self.response = {
            "success": True,
            "errors": [],
            "messages": [],
            "result": [{"results": [], "success": True, "meta": {}}],
        }
        self.raw_body = None

    async def handle(self, request):
        self.requests.append(
            {
                "path": request.path,
                "auth": request.headers.get("Authorization"),
                "body": await request.json(),
            }
        )
        if self.raw_body is not None:
            return web.Response(text=self.raw_body, content_type="text/html")
        return web.json_response(self.response)


@pytest_asyncio.fixture
async def stub():
    d1_stub = D1Stub()
    app = web.Application()
    app.router.add_post("/client/v4/accounts/{account}/d1/database/{db}/query", d1_stub.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    d1_stub.api_base = str(server.make_url("/client/v4"))
    yield d1_stub
    await server.close()


@pytest_asyncio.fixture
async def client(stub):
    async with ClientSession() as session:
        yield D1Client(CONFIG, session, api_base=stub.api_base)


@pytest.mark.asyncio
async def test_query_returns_first_result_rows(stub, client):
    stub.response["result"] = [
        {"results": [{"file_hash": "a"}, {"file_hash": "b"}], "success": True, "meta": {}},
        {"results": [{"ignored": 1}], "success": True, "meta": {}},
    ]

    rows = await client.query("SELECT file_hash FROM smms_pictures")

    assert rows == [{"file_hash": "a"}, {"file_hash": "b"}]
    sent = stub.requests[0]
    assert sent["path"] == "/client/v4/accounts/acc/d1/database/db/query"
    assert sent["auth"] == "Bearer secret-token"
    assert sent["body"] == {"sql": "SELECT file_hash FROM smms_pictures"}


@pytest.mark.asyncio
async def test_query_without_result_set(stub, client):
    stub.response["result"] = None
    assert await client.query("UPDATE t SET x = 1") == []


@pytest.mark.asyncio
async def test_batch_sends_one_joined_request(stub, client):
    await client.batch(["INSERT INTO t VALUES (1)", "INSERT INTO t VALUES (2)"])

    assert len(stub.requests) == 1
    assert stub.requests[0]["body"]["sql"] == (
        "INSERT INTO t VALUES (1); INSERT INTO t VALUES (2)"
    )


@pytest.mark.asyncio
async def test_empty_batch_is_a_no_op(stub, client):
    await client.batch([])
    assert stub.requests == []


@pytest.mark.asyncio
async def test_service_errors_are_concatenated(stub, client):
    stub.response = {
        "success": False,
        "errors": [
            {"code": 7500, "message": "SQLITE_ERROR: no such table"},
            {"code": 7400, "message": "bad request"},
        ],
        "messages": [],
        "result": None,
    }

    with pytest.raises(RemoteServiceError) as excinfo:
        await client.batch(["SELECT 1"])

    assert excinfo.value.errors == [
        (7500, "SQLITE_ERROR: no such table"),
        (7400, "bad request"),
    ]
    assert str(excinfo.value) == (
        "Batch execution failed: [7500] SQLITE_ERROR: no such table, [7400] bad request"
    )


@pytest.mark.asyncio
async def test_malformed_error_codes_fall_back_to_zero(stub, client):
    stub.response = {
        "success": False,
        "errors": [
            {"code": None, "message": "null code"},
            {"code": "E42", "message": "text code"},
            {"message": "no code"},
            {"code": "7500", "message": "numeric string"},
        ],
        "messages": [],
        "result": None,
    }

    with pytest.raises(RemoteServiceError) as excinfo:
        await client.query("SELECT 1")

    assert excinfo.value.errors == [
        (0, "null code"),
        (0, "text code"),
        (0, "no code"),
        (7500, "numeric string"),
    ]


@pytest.mark.asyncio
async def test_undecodable_response_is_transport_error(stub, client):
    stub.raw_body = "<html>gateway timeout</html>"

    with pytest.raises(TransportError, match="invalid response"):
        await client.query("SELECT 1")


@pytest.mark.asyncio
async def test_connection_refused_is_transport_error():
    async with ClientSession() as session:
        client = D1Client(CONFIG, session, api_base="http://127.0.0.1:9")
        with pytest.raises(TransportError, match="request failed"):
            await client.query("SELECT 1")


@pytest.mark.asyncio
async def test_connection_check(stub, client):
    assert await client.test_connection() == "Connection successful"
    assert stub.requests[0]["body"] == {"sql": "SELECT 1 as test"}
