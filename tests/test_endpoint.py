"""Tests for speedprobe.endpoint -- URLs, receipts and the real client."""

import asyncio
import unittest

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from fakes import CancelOnDownload

from speedprobe.cancel import CancelToken
from speedprobe.endpoint import Endpoint, TransferClient, UploadReceipt
from speedprobe.errors import MeasurementError, Reason, Stage, TransferError
from speedprobe.latency import LatencySampler
from speedprobe.orchestrator import MeasurementOrchestrator, MeasurementResult, RunState
from speedprobe.server import create_app

SMALL_LEGS = (16_384, 32_768)


def _orchestrator(client, label="test", **kwargs):
    return MeasurementOrchestrator(
        client,
        label,
        ping_attempts=2,
        ping_interval_ms=0,
        download_legs=SMALL_LEGS,
        upload_legs=SMALL_LEGS,
        upload_timing="client",
        **kwargs,
    )


class TestEndpoint(unittest.TestCase):
    def test_from_url_defaults_label_to_host(self):
        ep = Endpoint.from_url("https://speed.example.com/")
        self.assertEqual(ep.base_url, "https://speed.example.com")
        self.assertEqual(ep.label, "speed.example.com")

    def test_routes(self):
        ep = Endpoint.from_url("http://localhost:3000/speed", label="lab")
        self.assertEqual(ep.label, "lab")
        self.assertEqual(ep.ping_url, "http://localhost:3000/speed/api/ping")
        self.assertEqual(ep.download_url, "http://localhost:3000/speed/api/download")
        self.assertEqual(ep.upload_url, "http://localhost:3000/speed/api/upload")

    def test_invalid_url(self):
        for url in ("ftp://host", "localhost:3000", "", "http://"):
            with self.subTest(url=url):
                with self.assertRaises(ValueError):
                    Endpoint.from_url(url)


class TestUploadReceipt(unittest.TestCase):
    def test_from_dict(self):
        r = UploadReceipt.from_dict({"received": 1000, "duration": 12.5, "speed": 640000})
        self.assertEqual(r.received, 1000)
        self.assertEqual(r.duration_ms, 12.5)

    def test_malformed(self):
        for data in ({}, {"received": "many", "duration": 1}, {"received": 1}):
            with self.subTest(data=data):
                with self.assertRaises(TransferError):
                    UploadReceipt.from_dict(data)

    def test_non_finite_values_rejected(self):
        for data in (
            {"received": 1000, "duration": float("nan")},
            {"received": 1000, "duration": float("inf")},
            {"received": float("inf"), "duration": 5},
        ):
            with self.subTest(data=data):
                with self.assertRaises(TransferError):
                    UploadReceipt.from_dict(data)


class TestClientOutsideContext(unittest.IsolatedAsyncioTestCase):
    async def test_requires_context_manager(self):
        client = TransferClient(Endpoint.from_url("http://localhost:3000"))
        with self.assertRaises(RuntimeError):
            await client.echo()


class TestTransferClient(AioHTTPTestCase):
    async def get_application(self):
        return create_app(max_download_size=1_000_000, chunk_size=8192)

    def _endpoint(self):
        return Endpoint.from_url(str(self.server.make_url("/")), label="test")

    async def test_echo(self):
        async with TransferClient(self._endpoint()) as client:
            body = await client.echo()
        self.assertIn(b"pong", body)

    async def test_download_streams_all_bytes(self):
        chunks = []
        async with TransferClient(self._endpoint(), chunk_size=4096) as client:
            async for chunk in client.download(50_000):
                chunks.append(chunk)
        self.assertEqual(sum(len(c) for c in chunks), 50_000)
        self.assertGreater(len(chunks), 1)

    async def test_download_error_status(self):
        async with TransferClient(self._endpoint()) as client:
            with self.assertRaises(TransferError):
                async for _ in client.download(5_000_000):
                    pass

    async def test_upload(self):
        async with TransferClient(self._endpoint()) as client:
            receipt = await client.upload(b"\x00" * 20_000)
        self.assertEqual(receipt.received, 20_000)
        self.assertGreaterEqual(receipt.duration_ms, 0)

    async def test_full_run_against_server(self):
        async with TransferClient(self._endpoint()) as client:
            result = await _orchestrator(client).run()
        self.assertGreater(result.download_bps, 0)
        self.assertGreater(result.upload_bps, 0)
        self.assertGreaterEqual(result.latency_ms, 0)

    async def test_concurrent_runs_against_server(self):
        async with TransferClient(self._endpoint()) as a, TransferClient(self._endpoint()) as b:
            first, second = _orchestrator(a, "first"), _orchestrator(b, "second")
            results = await asyncio.gather(first.run(), second.run())
        self.assertEqual([r.server_label for r in results], ["first", "second"])
        self.assertTrue(all(r.download_bps > 0 and r.upload_bps > 0 for r in results))
        self.assertIs(first.state, RunState.COMPLETE)
        self.assertIs(second.state, RunState.COMPLETE)

    async def test_cancelling_one_run_against_server(self):
        token = CancelToken()
        async with TransferClient(self._endpoint()) as a, TransferClient(self._endpoint()) as b:
            doomed = _orchestrator(a, observer=CancelOnDownload(token), cancel=token)
            other = _orchestrator(b)
            outcomes = await asyncio.gather(doomed.run(), other.run(), return_exceptions=True)
        self.assertIsInstance(outcomes[0], MeasurementError)
        self.assertEqual(outcomes[0].stage, Stage.DOWNLOAD)
        self.assertEqual(outcomes[0].reason, Reason.CANCELLED)
        self.assertIs(doomed.state, RunState.ERRORED)
        self.assertIsInstance(outcomes[1], MeasurementResult)
        self.assertIs(other.state, RunState.COMPLETE)


class TestNonJsonBodies(AioHTTPTestCase):
    """A proxy or captive portal answering 200 with HTML instead of JSON."""

    async def get_application(self):
        routes = web.RouteTableDef()

        @routes.get("/api/ping")
        async def ping(request):
            return web.Response(text="<html>Sign in to Wi-Fi</html>", content_type="text/html")

        @routes.get("/api/download")
        async def download(request):
            return web.Response(body=b"\0" * int(request.query["size"]))

        @routes.post("/api/upload")
        async def upload(request):
            await request.read()
            return web.Response(text="OK")

        app = web.Application()
        app.add_routes(routes)
        return app

    def _endpoint(self):
        return Endpoint.from_url(str(self.server.make_url("/")), label="portal")

    async def test_ping_body_is_not_parsed(self):
        async with TransferClient(self._endpoint()) as client:
            estimate = await LatencySampler(client).measure(2, 0)
        self.assertEqual(len(estimate.samples), 2)
        self.assertEqual(estimate.failed_attempts, 0)

    async def test_upload_receipt_not_json(self):
        async with TransferClient(self._endpoint()) as client:
            with self.assertRaises(TransferError):
                await client.upload(b"\x00" * 1000)

    async def test_run_ends_errored_in_upload_stage(self):
        async with TransferClient(self._endpoint()) as client:
            orch = MeasurementOrchestrator(
                client,
                "portal",
                ping_attempts=2,
                ping_interval_ms=0,
                download_legs=SMALL_LEGS,
                upload_legs=SMALL_LEGS,
            )
            with self.assertRaises(MeasurementError) as ctx:
                await orch.run()
        self.assertEqual(ctx.exception.stage, Stage.UPLOAD)
        self.assertEqual(ctx.exception.reason, Reason.ALL_LEGS_FAILED)
        self.assertIs(orch.state, RunState.ERRORED)


if __name__ == "__main__":
    unittest.main()
