"""
Tests for the upstream daemon client against a local fake daemon.
"""
import asyncio
import unittest

import pytest
from aiohttp import web
from aiohttp import test_utils

from proxy.errors import PayloadError
from proxy.models import Operation, UpstreamAddress, is_error
from proxy.upstream import UpstreamClient


def make_daemon_app(difficulty=60):
    """A daemon answering the four endpoints the proxy forwards."""
    app = web.Application()
    app["posted"] = []

    async def getinfo(request):
        return web.json_response({"difficulty": difficulty, "height": 500, "status": "OK"})

    async def getheight(request):
        return web.json_response({"height": 500, "network_height": 501, "status": "OK"})

    async def gettransactions(request):
        return web.json_response({"transactions": [{"hash": "ab" * 32}], "status": "OK"})

    async def get_json_rpc(request):
        return web.json_response({"jsonrpc": "2.0", "error": {"code": -32600, "message": "Invalid Request"}})

    async def post_json_rpc(request):
        body = await request.json()
        request.app["posted"].append(body)
        return web.json_response({"jsonrpc": "2.0", "id": body.get("id"), "result": {"count": 42}})

    app.router.add_get("/getinfo", getinfo)
    app.router.add_get("/getheight", getheight)
    app.router.add_get("/gettransactions", gettransactions)
    app.router.add_get("/json_rpc", get_json_rpc)
    app.router.add_post("/json_rpc", post_json_rpc)
    return app


def make_broken_app():
    """A daemon whose every endpoint misbehaves in a different way."""
    app = web.Application()

    async def malformed(request):
        return web.Response(text="<html>not json</html>", content_type="text/html")

    async def not_an_object(request):
        return web.json_response([1, 2, 3])

    async def server_error(request):
        return web.json_response({"status": "busy"}, status=500)

    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({"jsonrpc": "2.0", "result": {}})

    async def no_difficulty(request):
        return web.json_response({"height": 1, "status": "OK"})

    app.router.add_get("/getheight", malformed)
    app.router.add_get("/gettransactions", server_error)
    app.router.add_get("/json_rpc", not_an_object)
    app.router.add_post("/json_rpc", slow)
    app.router.add_get("/getinfo", no_difficulty)
    return app


def make_odd_payload_app():
    """A daemon that answers with bytes a strict JSON reader must refuse."""
    app = web.Application()

    async def invalid_utf8(request):
        return web.Response(body=b'{"height": 5, "x": "\xff\xfe"}', content_type="application/json")

    async def nan_difficulty(request):
        return web.Response(body=b'{"difficulty": NaN, "height": 5}', content_type="application/json")

    async def infinite_height(request):
        return web.Response(body=b'{"height": Infinity}', content_type="application/json")

    app.router.add_get("/getheight", invalid_utf8)
    app.router.add_get("/getinfo", nan_difficulty)
    app.router.add_get("/gettransactions", infinite_height)
    return app


class TestUpstreamClient(unittest.TestCase):
    """Test cases for UpstreamClient against a healthy daemon."""

    def setUp(self):
        """Set up test environment."""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.daemon_app = make_daemon_app()
        self.server = test_utils.TestServer(self.daemon_app, host="127.0.0.1")
        self.loop.run_until_complete(self.server.start_server())
        self.address = UpstreamAddress(host="127.0.0.1", port=self.server.port)
        self.client = UpstreamClient(request_timeout=2.0)

    def tearDown(self):
        """Clean up after tests."""
        self.loop.run_until_complete(self.client.close())
        self.loop.run_until_complete(self.server.close())
        self.loop.close()

    def fetch(self, operation, body=None, address=None):
        return self.loop.run_until_complete(self.client.fetch(operation, address or self.address, body))

    def test_getinfo_derives_hash_rate(self):
        """difficulty / 30-second target block time, rounded."""
        result = self.fetch(Operation.GETINFO)
        self.assertFalse(is_error(result))
        self.assertEqual(result["difficulty"], 60)
        self.assertEqual(result["globalHashRate"], 2)
        self.assertEqual(result["height"], 500)
        self.assertFalse(result["cached"])
        self.assertEqual(result["node"], {"host": "127.0.0.1", "port": self.server.port})

    def test_getheight_passes_payload_through(self):
        result = self.fetch(Operation.GETHEIGHT)
        self.assertEqual(result["height"], 500)
        self.assertEqual(result["network_height"], 501)
        self.assertFalse(result["cached"])
        self.assertNotIn("globalHashRate", result)

    def test_gettransactions(self):
        result = self.fetch(Operation.GETTRANSACTIONS)
        self.assertEqual(len(result["transactions"]), 1)
        self.assertEqual(result["node"]["port"], self.server.port)

    def test_get_json_rpc_envelope_is_not_an_error_result(self):
        """A JSON-RPC level error is still a successful fetch."""
        result = self.fetch(Operation.JSON_RPC)
        self.assertFalse(is_error(result))
        self.assertEqual(result["error"]["code"], -32600)
        self.assertFalse(result["cached"])

    def test_post_json_rpc_forwards_body_verbatim(self):
        body = {"jsonrpc": "2.0", "id": "test", "method": "getblockcount", "params": {}}
        result = self.fetch(Operation.JSON_RPC_POST, body=body)
        self.assertEqual(result["result"], {"count": 42})
        self.assertEqual(result["id"], "test")
        self.assertEqual(self.daemon_app["posted"], [body])

    def test_session_is_reused(self):
        self.fetch(Operation.GETHEIGHT)
        session = self.client.session
        self.fetch(Operation.GETINFO)
        self.assertIs(self.client.session, session)

    def test_connection_refused(self):
        """A daemon that is not listening becomes an error result."""
        dead = test_utils.TestServer(web.Application(), host="127.0.0.1")
        self.loop.run_until_complete(dead.start_server())
        port = dead.port
        self.loop.run_until_complete(dead.close())

        address = UpstreamAddress(host="127.0.0.1", port=port)
        result = self.fetch(Operation.GETHEIGHT, address=address)
        self.assertTrue(is_error(result))
        self.assertTrue(result["error"])
        self.assertEqual(result["node"], {"host": "127.0.0.1", "port": port})
        self.assertNotIn("cached", result)


class TestUpstreamFailures(unittest.TestCase):
    """Test cases for payload and transport failures."""

    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.server = test_utils.TestServer(make_broken_app(), host="127.0.0.1")
        self.loop.run_until_complete(self.server.start_server())
        self.address = UpstreamAddress(host="127.0.0.1", port=self.server.port)
        self.client = UpstreamClient(request_timeout=0.3)

    def tearDown(self):
        self.loop.run_until_complete(self.client.close())
        self.loop.run_until_complete(self.server.close())
        self.loop.close()

    def fetch(self, operation, body=None):
        return self.loop.run_until_complete(self.client.fetch(operation, self.address, body))

    def assertErrorResult(self, result):
        self.assertTrue(is_error(result))
        self.assertEqual(set(result), {"error", "node"})
        self.assertEqual(result["node"], self.address.as_dict())

    def test_malformed_json(self):
        result = self.fetch(Operation.GETHEIGHT)
        self.assertErrorResult(result)
        self.assertIn("malformed JSON", result["error"])

    def test_non_2xx_status(self):
        result = self.fetch(Operation.GETTRANSACTIONS)
        self.assertErrorResult(result)
        self.assertIn("500", result["error"])

    def test_json_that_is_not_an_object(self):
        self.assertErrorResult(self.fetch(Operation.JSON_RPC))

    def test_timeout(self):
        result = self.fetch(Operation.JSON_RPC_POST, body={"method": "getblockcount"})
        self.assertErrorResult(result)
        self.assertIn("timed out", result["error"])

    def test_getinfo_without_difficulty(self):
        result = self.fetch(Operation.GETINFO)
        self.assertErrorResult(result)
        self.assertIn("difficulty", result["error"])


def test_hash_rate_rounds_half_up():
    client = UpstreamClient()
    address = UpstreamAddress(host="node.example", port=11898)

    assert client._normalize(Operation.GETINFO, address, {"difficulty": 45})["globalHashRate"] == 2
    assert client._normalize(Operation.GETINFO, address, {"difficulty": 44})["globalHashRate"] == 1
    assert client._normalize(Operation.GETINFO, address, {"difficulty": 0})["globalHashRate"] == 0


def test_target_block_time_is_configurable():
    client = UpstreamClient(target_block_time=60)
    address = UpstreamAddress(host="node.example", port=11898)
    assert client._normalize(Operation.GETINFO, address, {"difficulty": 600})["globalHashRate"] == 10


class TestUpstreamOddPayloads(unittest.TestCase):
    """Test cases for bodies that are not strict UTF-8 JSON."""

    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.server = test_utils.TestServer(make_odd_payload_app(), host="127.0.0.1")
        self.loop.run_until_complete(self.server.start_server())
        self.address = UpstreamAddress(host="127.0.0.1", port=self.server.port)
        self.client = UpstreamClient(request_timeout=2.0)

    def tearDown(self):
        self.loop.run_until_complete(self.client.close())
        self.loop.run_until_complete(self.server.close())
        self.loop.close()

    def fetch(self, operation):
        return self.loop.run_until_complete(self.client.fetch(operation, self.address))

    def test_invalid_utf8_body(self):
        result = self.fetch(Operation.GETHEIGHT)
        self.assertTrue(is_error(result))
        self.assertEqual(result["node"], self.address.as_dict())
        self.assertIn("malformed JSON", result["error"])

    def test_nan_difficulty(self):
        result = self.fetch(Operation.GETINFO)
        self.assertTrue(is_error(result))
        self.assertIn("NaN", result["error"])

    def test_infinite_height(self):
        result = self.fetch(Operation.GETTRANSACTIONS)
        self.assertTrue(is_error(result))
        self.assertIn("Infinity", result["error"])


def test_non_finite_difficulty_is_rejected():
    client = UpstreamClient()
    address = UpstreamAddress(host="node.example", port=11898)

    for difficulty in (float("nan"), float("inf"), True, "60"):
        with pytest.raises(PayloadError):
            client._normalize(Operation.GETINFO, address, {"difficulty": difficulty})
