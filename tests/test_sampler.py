"""Unit tests for the asynchronous statistical sampler.

The transport is driven by hand so each readback completes exactly when the
test says so.

Run with:
    pytest tests/test_sampler.py -v
"""

from __future__ import annotations

import math
import time

import numpy as np
import pytest
import torch

from universe.camera.sampler import (
    HostSnapshot,
    StatisticalSampler,
    ThreadedReadback,
    clip_space_stats,
)
from universe.simulation.config import SimulationConfig
from universe.simulation.field import ParticleFieldStore, ParticleState

from tests.helpers import ManualTransport


def _identity():
    return np.eye(4)


@pytest.fixture
def config():
    return SimulationConfig(num_particles=8, sample_ratio=0.5)


@pytest.fixture
def transport():
    return ManualTransport()


@pytest.fixture
def received():
    return []


@pytest.fixture
def sampler(config, transport, received):
    return StatisticalSampler(
        config, transport, sink=received.append, view_projection=_identity,
        rng=np.random.default_rng(0),
    )


POINTS = [[2.0, 3.0, -1.0]] * 8


class TestChain:
    """Exactly one readback in flight; each completion schedules the next."""

    def test_start_issues_one_request(self, sampler, transport):
        sampler.start()
        sampler.start()
        assert len(transport.requests) == 1
        assert sampler.running
        assert sampler.in_flight

    def test_completion_emits_and_reissues(self, sampler, transport, received):
        sampler.start()
        transport.complete(POINTS, generation=3)

        assert len(received) == 1
        assert received[0].generation == 3
        assert sampler.completed == 1
        assert len(transport.requests) == 2
        assert sampler.in_flight

    def test_chain_runs_for_many_cycles(self, sampler, transport, received):
        sampler.start()
        for g in range(5):
            transport.complete(POINTS, generation=g)
        assert [o.generation for o in received] == list(range(5))
        assert len(transport.requests) == 6

    def test_failure_skips_emit_and_reissues(self, sampler, transport, received):
        sampler.start()
        transport.fail("device lost")

        assert received == []
        assert sampler.failures == 1
        assert len(transport.requests) == 2

        transport.complete(POINTS, generation=1)
        assert len(received) == 1

    def test_projection_error_skips_emit_and_reissues(self, config, transport, received):
        calls = []

        def flaky_projection():
            calls.append(1)
            if len(calls) == 1:
                raise FloatingPointError("degenerate camera")
            return np.eye(4)

        s = StatisticalSampler(config, transport, sink=received.append, view_projection=flaky_projection)
        s.start()
        transport.complete(POINTS, generation=1)

        assert received == []
        assert s.failures == 1
        assert s.running and s.in_flight
        assert len(transport.requests) == 2

        transport.complete(POINTS, generation=2)
        assert [o.generation for o in received] == [2]

    def test_sink_error_does_not_end_chain(self, config, transport):
        def broken_sink(observation):
            raise RuntimeError("controller rejected observation")

        s = StatisticalSampler(config, transport, sink=broken_sink, view_projection=_identity)
        s.start()
        transport.complete(POINTS)
        transport.complete(POINTS)

        assert s.failures == 2
        assert s.in_flight
        assert len(transport.requests) == 3

    def test_stop_cancels_pending_and_ends_chain(self, sampler, transport):
        sampler.start()
        sampler.stop()

        assert not sampler.running
        assert not sampler.in_flight
        assert transport.requests[0].cancelled()
        assert len(transport.requests) == 1

    def test_completion_after_stop_neither_emits_nor_reissues(self, sampler, transport, received):
        sampler.start()
        future = transport.pending
        assert future.set_running_or_notify_cancel()  # copy already underway; cancel() is a no-op now

        sampler.stop()
        transport.complete(POINTS)

        assert received == []
        assert len(transport.requests) == 1
        sampler.stop()

    def test_restart_after_stop(self, sampler, transport, received):
        sampler.start()
        sampler.stop()
        sampler.start()
        assert len(transport.requests) == 2
        transport.complete(POINTS)
        assert len(received) == 1


class TestObservation:
    def test_constant_cloud_statistics(self, sampler):
        obs = sampler.observe(HostSnapshot(positions=np.array(POINTS), generation=7))

        np.testing.assert_allclose(obs.centroid_world, [2.0, 3.0, -1.0])
        # Bounding rectangle grows from the origin: [0, 2] x [0, 3].
        assert obs.screen_bounds_area == pytest.approx(6.0)
        assert obs.mean_centre_distance == pytest.approx(math.sqrt(13.0))
        assert obs.generation == 7

    def test_sample_count_follows_ratio(self, sampler):
        obs = sampler.observe(HostSnapshot(positions=np.zeros((8, 3)), generation=0))
        assert obs.sample_count == 4

    def test_sample_count_is_at_least_one(self, transport):
        cfg = SimulationConfig(num_particles=8, sample_ratio=0.01)
        s = StatisticalSampler(cfg, transport, sink=lambda o: None, view_projection=_identity)
        obs = s.observe(HostSnapshot(positions=np.ones((8, 3)), generation=0))
        assert obs.sample_count == 1
        np.testing.assert_allclose(obs.centroid_world, [1.0, 1.0, 1.0])

    def test_centroid_lies_within_sampled_points(self, sampler):
        rng = np.random.default_rng(1)
        positions = rng.uniform(-5.0, 5.0, size=(8, 3))
        obs = sampler.observe(HostSnapshot(positions=positions, generation=0))
        assert np.all(obs.centroid_world >= positions.min(axis=0) - 1e-12)
        assert np.all(obs.centroid_world <= positions.max(axis=0) + 1e-12)

    def test_empty_snapshot(self, sampler):
        obs = sampler.observe(HostSnapshot(positions=np.zeros((0, 3)), generation=0))
        assert obs.sample_count == 0
        assert obs.screen_bounds_area == 0.0

    def test_clip_space_stats_rectangle_contains_centre(self):
        area, dist = clip_space_stats(np.array([[0.5, 0.5], [0.25, 0.75]]))
        assert area == pytest.approx(0.5 * 0.75)
        assert dist == pytest.approx((math.hypot(0.5, 0.5) + math.hypot(0.25, 0.75)) / 2)


class TestThreadedReadback:
    def test_readback_copies_current_generation(self):
        store = ParticleFieldStore(4)
        store.init(ParticleState.from_arrays(position=[[1.0, 2.0, 3.0]] * 4))
        store.commit_step(store.begin_step())

        readback = ThreadedReadback(store)
        try:
            snap = readback.request().result(timeout=5.0)
        finally:
            readback.close()

        assert snap.generation == 1
        np.testing.assert_allclose(snap.positions, [[1.0, 2.0, 3.0]] * 4)

    def test_bfloat16_field_reads_back_as_float64(self):
        store = ParticleFieldStore(4, dtype=torch.bfloat16)
        store.init(ParticleState.from_arrays(position=[[1.0, 2.0, 3.0]] * 4, dtype=torch.bfloat16))

        readback = ThreadedReadback(store)
        try:
            snap = readback.request().result(timeout=5.0)
        finally:
            readback.close()

        assert snap.positions.dtype == np.float64
        np.testing.assert_allclose(snap.positions, [[1.0, 2.0, 3.0]] * 4)

        s = StatisticalSampler(
            SimulationConfig(num_particles=4, dtype=torch.bfloat16), ManualTransport(),
            sink=lambda o: None, view_projection=_identity,
        )
        np.testing.assert_allclose(s.observe(snap).centroid_world, [1.0, 2.0, 3.0])

    def test_threaded_chain_emits_observations(self):
        store = ParticleFieldStore(16)
        store.init(ParticleState.from_arrays(position=np.ones((16, 3))))
        cfg = SimulationConfig(num_particles=16, sample_ratio=0.25)
        received = []

        readback = ThreadedReadback(store)
        s = StatisticalSampler(cfg, readback, sink=received.append, view_projection=_identity)
        s.start()
        try:
            deadline = time.monotonic() + 5.0
            while len(received) < 3 and time.monotonic() < deadline:
                store.commit_step(store.begin_step())
                time.sleep(0.001)
        finally:
            s.stop()
            readback.close()

        assert len(received) >= 3
        np.testing.assert_allclose(received[-1].centroid_world, [1.0, 1.0, 1.0])
