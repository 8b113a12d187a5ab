"""Tests for speedprobe.throughput -- staged legs in both directions."""

import unittest

from fakes import FakeClock, FakeTransport, RecordingObserver

from speedprobe.constants import DOWNLOAD_LEG_SIZES, UPLOAD_LEG_SIZES
from speedprobe.errors import MeasurementError, Reason, Stage
from speedprobe.throughput import ThroughputSampler, UploadTiming

KIB = 1024
LEGS = (64 * KIB, 128 * KIB, 256 * KIB)


def _sampler(transport, clock, **kwargs):
    return ThroughputSampler(
        transport,
        clock=clock,
        payload_factory=lambda n: b"\x01" * n,
        **kwargs,
    )


class TestDownload(unittest.IsolatedAsyncioTestCase):
    async def test_rate_matches_link(self):
        clock = FakeClock()
        transport = FakeTransport(clock, download_bps=50_000_000)
        est = await _sampler(transport, clock).download(LEGS)
        self.assertAlmostEqual(est.bits_per_second, 50_000_000, delta=1.0)
        self.assertEqual(est.total_bytes, sum(LEGS))
        self.assertEqual(transport.download_calls, list(LEGS))

    async def test_default_legs(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        await _sampler(transport, clock).download()
        self.assertEqual(transport.download_calls, list(DOWNLOAD_LEG_SIZES))

    async def test_one_failed_leg_still_yields_estimate(self):
        clock = FakeClock()
        transport = FakeTransport(clock, fail_download={1})
        est = await _sampler(transport, clock).download(LEGS)
        self.assertGreater(est.bits_per_second, 0)
        self.assertEqual(len(est.legs), 2)
        self.assertEqual(est.failed_legs, 1)

    async def test_all_legs_failed(self):
        clock = FakeClock()
        transport = FakeTransport(clock, fail_download={0, 1, 2})
        with self.assertRaises(MeasurementError) as ctx:
            await _sampler(transport, clock).download(LEGS)
        self.assertEqual(ctx.exception.stage, Stage.DOWNLOAD)
        self.assertEqual(ctx.exception.reason, Reason.ALL_LEGS_FAILED)

    async def test_single_leg_timeout(self):
        clock = FakeClock()
        transport = FakeTransport(clock, hang=True)
        with self.assertRaises(MeasurementError) as ctx:
            await _sampler(transport, clock, timeout=0.01).download([64 * KIB])
        self.assertEqual(ctx.exception.reason, Reason.TIMEOUT)

    async def test_single_leg_network_failure(self):
        clock = FakeClock()
        transport = FakeTransport(clock, fail_download={0})
        with self.assertRaises(MeasurementError) as ctx:
            await _sampler(transport, clock).download([64 * KIB])
        self.assertEqual(ctx.exception.reason, Reason.NETWORK_FAILURE)

    async def test_truncated_body_fails_leg(self):
        clock = FakeClock()
        transport = FakeTransport(clock, truncate_download=True)
        with self.assertRaises(MeasurementError) as ctx:
            await _sampler(transport, clock).download([256 * KIB])
        self.assertEqual(ctx.exception.reason, Reason.NETWORK_FAILURE)

    async def test_progress_per_chunk(self):
        clock = FakeClock()
        transport = FakeTransport(clock, chunk_size=64 * KIB)
        observer = RecordingObserver()
        await _sampler(transport, clock, observer=observer).download([256 * KIB])
        progress = observer.progress(Stage.DOWNLOAD)
        self.assertEqual([p[0] for p in progress], [64 * KIB, 128 * KIB, 192 * KIB, 256 * KIB])
        self.assertTrue(all(p[1] == 256 * KIB for p in progress))
        self.assertAlmostEqual(progress[-1][2], 50_000_000, delta=1.0)


class TestUpload(unittest.IsolatedAsyncioTestCase):
    async def test_server_timing_ignores_client_overhead(self):
        clock = FakeClock()
        transport = FakeTransport(clock, upload_bps=20_000_000, upload_overhead_s=0.5)
        est = await _sampler(transport, clock, upload_timing=UploadTiming.SERVER).upload(LEGS)
        self.assertAlmostEqual(est.bits_per_second, 20_000_000, delta=1.0)

    async def test_client_timing_includes_overhead(self):
        clock = FakeClock()
        transport = FakeTransport(clock, upload_bps=20_000_000, upload_overhead_s=0.5)
        est = await _sampler(transport, clock, upload_timing=UploadTiming.CLIENT).upload(LEGS)
        bits = sum(LEGS) * 8
        expected = bits / (bits / 20_000_000 + 3 * 0.5)
        self.assertAlmostEqual(est.bits_per_second, expected, delta=1.0)
        self.assertLess(est.bits_per_second, 20_000_000)

    async def test_default_legs_and_start_time(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        await _sampler(transport, clock).upload()
        self.assertEqual([n for n, _ in transport.upload_calls], list(UPLOAD_LEG_SIZES))
        self.assertTrue(all(start and start > 0 for _, start in transport.upload_calls))

    async def test_zero_server_duration_fails_leg(self):
        clock = FakeClock()
        transport = FakeTransport(clock, upload_duration_ms=0)
        with self.assertRaises(MeasurementError) as ctx:
            await _sampler(transport, clock).upload(LEGS)
        self.assertEqual(ctx.exception.stage, Stage.UPLOAD)
        self.assertEqual(ctx.exception.reason, Reason.ALL_LEGS_FAILED)

    async def test_non_finite_server_duration_fails_leg(self):
        for duration in (float("nan"), float("inf")):
            with self.subTest(duration=duration):
                clock = FakeClock()
                transport = FakeTransport(clock, upload_duration_ms=duration)
                with self.assertRaises(MeasurementError) as ctx:
                    await _sampler(transport, clock).upload(LEGS)
                self.assertEqual(ctx.exception.reason, Reason.ALL_LEGS_FAILED)

    async def test_one_failed_leg(self):
        clock = FakeClock()
        transport = FakeTransport(clock, fail_upload={0})
        observer = RecordingObserver()
        est = await _sampler(transport, clock, observer=observer).upload(LEGS)
        self.assertEqual(est.failed_legs, 1)
        # Progress is reported for completed legs only.
        self.assertEqual([p[:2] for p in observer.progress(Stage.UPLOAD)], [(2, 3), (3, 3)])


class TestValidation(unittest.IsolatedAsyncioTestCase):
    async def test_rejects_bad_legs(self):
        clock = FakeClock()
        sampler = _sampler(FakeTransport(clock), clock)
        with self.assertRaises(ValueError):
            await sampler.download([])
        with self.assertRaises(ValueError):
            await sampler.upload([1024, 0])

    async def test_rejects_latency_direction(self):
        clock = FakeClock()
        sampler = _sampler(FakeTransport(clock), clock)
        with self.assertRaises(ValueError):
            await sampler.measure(Stage.LATENCY, LEGS)

    def test_upload_timing_from_string(self):
        clock = FakeClock()
        sampler = ThroughputSampler(FakeTransport(clock), upload_timing="client")
        self.assertIs(sampler.upload_timing, UploadTiming.CLIENT)


if __name__ == "__main__":
    unittest.main()
