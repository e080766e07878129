"""
Unit tests for ParticleSystem.
Run with:  pytest tests/
"""

from __future__ import annotations

import pytest

from heartbeat_flow.particles import (
    Particle,
    ParticleColor,
    ParticleShape,
    ParticleSystem,
)

ORIGIN = (0.15, 0.5)


class TestBurst:

    def test_burst_adds_exact_count(self):
        ps = ParticleSystem(seed=1)
        for n in range(15, 26):
            before_live = ps.active_count
            before_total = ps.data_processed
            ps.burst(ORIGIN, n)
            assert ps.active_count == before_live + n
            assert ps.data_processed == before_total + n

    def test_default_count_in_range(self):
        ps = ParticleSystem(seed=3)
        for _ in range(50):
            spawned = ps.burst(ORIGIN)
            assert 15 <= len(spawned) <= 25

    def test_particles_start_at_origin(self):
        ps = ParticleSystem(seed=4)
        for p in ps.burst(ORIGIN, 20):
            assert p.position == ORIGIN
            assert p.opacity == 1.0
            assert p.scale == 1.0
            assert p.active

    def test_randomised_attributes_bounded(self):
        ps = ParticleSystem(seed=5)
        spawned = ps.burst(ORIGIN, 500)
        for p in spawned:
            assert 0.003 <= p.vx <= 0.008
            assert -0.002 <= p.vy <= 0.002
            assert 4.0 <= p.size <= 12.0
            assert isinstance(p.color, ParticleColor)
            assert isinstance(p.shape, ParticleShape)
        # With 500 draws every category should show up
        assert {p.shape for p in spawned} == set(ParticleShape)
        assert {p.color for p in spawned} == set(ParticleColor)

    def test_ids_unique(self):
        ps = ParticleSystem(seed=6)
        spawned = ps.burst(ORIGIN, 25)
        assert len({p.id for p in spawned}) == 25

    def test_seed_reproducible(self):
        a = ParticleSystem(seed=42).burst(ORIGIN, 10)
        b = ParticleSystem(seed=42).burst(ORIGIN, 10)
        assert [(p.vx, p.vy, p.size, p.color, p.shape) for p in a] == \
               [(p.vx, p.vy, p.size, p.color, p.shape) for p in b]

    def test_zero_count_is_noop(self):
        ps = ParticleSystem(seed=7)
        assert ps.burst(ORIGIN, 0) == []
        assert len(ps) == 0
        assert ps.data_processed == 0

    def test_negative_count_rejected(self):
        ps = ParticleSystem(seed=7)
        with pytest.raises(ValueError):
            ps.burst(ORIGIN, -1)


class TestTick:

    def test_opacity_decays_linearly(self):
        ps = ParticleSystem(seed=8)
        ps.burst(ORIGIN, 20)
        for k in range(1, 101):
            ps.tick()
            for p in ps:
                assert p.opacity == pytest.approx(max(0.0, 1.0 - 0.008 * k))

    def test_position_advances_by_velocity(self):
        ps = ParticleSystem(seed=9)
        (p,) = ps.burst(ORIGIN, 1)
        for _ in range(10):
            ps.tick()
        assert p.x == pytest.approx(ORIGIN[0] + 10 * p.vx)
        assert p.y == pytest.approx(ORIGIN[1] + 10 * p.vy)
        assert p.x > ORIGIN[0]

    def test_scale_clamped_at_floor(self):
        ps = ParticleSystem(opacity_decay=0.001, seed=10)
        ps.burst(ORIGIN, 5)
        for _ in range(400):
            ps.tick()
        for p in ps:
            assert p.scale == pytest.approx(0.1)

    def test_burst_then_125_ticks_leaves_nothing(self):
        ps = ParticleSystem(seed=11)
        assert ps.active_count == 0
        ps.burst(ORIGIN, 20)
        for _ in range(124):
            ps.tick()
        assert ps.active_count == 20
        ps.tick()
        assert ps.active_count == 0
        assert len(ps) == 0
        assert ps.data_processed == 20

    def test_tick_never_grows_collection(self):
        ps = ParticleSystem(seed=12)
        ps.burst(ORIGIN, 25)
        sizes = [len(ps)]
        for i in range(140):
            if i == 60:
                ps.burst(ORIGIN, 15)
                sizes.append(len(ps))
            ps.tick()
            assert len(ps) <= sizes[-1]
            sizes.append(len(ps))

    def test_staggered_bursts_expire_in_order(self):
        ps = ParticleSystem(seed=13)
        ps.burst(ORIGIN, 20)
        for _ in range(60):
            ps.tick()
        ps.burst(ORIGIN, 15)
        for _ in range(65):
            ps.tick()
        # First burst gone after 125 ticks, second still alive
        assert ps.active_count == 15
        assert all(p.opacity > 0 for p in ps)

    def test_tick_reports_removed(self):
        ps = ParticleSystem(opacity_decay=0.5, seed=14)
        ps.burst(ORIGIN, 7)
        assert ps.tick() == 0
        assert ps.tick() == 7

    def test_clear(self):
        ps = ParticleSystem(seed=15)
        ps.burst(ORIGIN, 20)
        ps.clear()
        assert len(ps) == 0
        assert ps.data_processed == 0

    def test_iteration_is_a_snapshot(self):
        ps = ParticleSystem(opacity_decay=0.5, seed=16)
        ps.burst(ORIGIN, 5)
        seen = list(ps)
        ps.tick()
        ps.tick()
        # The live set is read through len() and iteration only
        assert len(ps) == 0
        assert list(ps) == []
        assert len(seen) == 5 and all(not p.active for p in seen)


class TestParticle:

    def test_draw_size_scales(self):
        p = Particle(0.1, 0.2, 0.0, 0.0, 10.0, ParticleColor.CYAN, ParticleShape.HEXAGON, scale=0.5)
        assert p.draw_size == pytest.approx(5.0)

    def test_palette_colours_are_bgr(self):
        for color in ParticleColor:
            assert len(color.bgr) == 3
            assert all(0 <= c <= 255 for c in color.bgr)
