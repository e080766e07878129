"""
Unit tests for the OpenCV renderer.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from heartbeat_flow.particles import Particle, ParticleColor, ParticleShape
from heartbeat_flow.scheduler import DisplayValues, HeartbeatScheduler, HeartbeatState
from heartbeat_flow.visualizer import (
    Visualizer,
    gradient_color,
    heart_polygon,
    shape_polygon,
)
from heartbeat_flow.waveform import WaveformGenerator

RES = (320, 240)


def _values(**overrides) -> DisplayValues:
    base = dict(bpm=72, signal_percent=95, data_processed=0, active_particles=0, elapsed="00:00")
    base.update(overrides)
    return DisplayValues(**base)


def _waveform(vis: Visualizer, state: HeartbeatState) -> np.ndarray:
    gen = WaveformGenerator(samples=120)
    return gen.polyline(
        state.phase, state.amplitude, state.pulse_intensity,
        vis.panel_size, vis.panel_origin,
    )


class TestGeometryHelpers:

    @pytest.mark.parametrize("shape, n", [
        (ParticleShape.SQUARE, 4),
        (ParticleShape.DIAMOND, 4),
        (ParticleShape.HEXAGON, 6),
    ])
    def test_shape_vertex_count(self, shape, n):
        poly = shape_polygon(shape, (50, 50), 10)
        assert poly.shape == (n, 2)
        assert poly.dtype == np.int32

    def test_shape_fits_box(self):
        for shape in (ParticleShape.SQUARE, ParticleShape.DIAMOND, ParticleShape.HEXAGON):
            poly = shape_polygon(shape, (50, 50), 10)
            assert poly[:, 0].min() >= 45 and poly[:, 0].max() <= 55
            assert poly[:, 1].min() >= 45 and poly[:, 1].max() <= 55

    def test_heart_centred(self):
        poly = heart_polygon((100, 100), 32)
        assert abs(poly[:, 0].mean() - 100) < 2

    def test_gradient_endpoints(self):
        stops = ((0, 0, 0), (100, 200, 250))
        assert gradient_color(stops, 0.0) == (0, 0, 0)
        assert gradient_color(stops, 1.0) == (100, 200, 250)
        assert gradient_color(stops, 0.5) == (50, 100, 125)
        assert gradient_color(stops, 2.0) == (100, 200, 250)


class TestVisualizer:

    def test_panel_layout(self):
        vis = Visualizer(resolution=RES, panel_height=120, padding=20)
        assert vis.panel == (20, 60, 280, 120)
        assert vis.to_pixels(0.0, 0.0) == (20, 60)
        assert vis.to_pixels(1.0, 1.0) == (300, 180)

    @pytest.mark.parametrize("resolution", [(0, 240), (320, 0), (-320, 240)])
    def test_non_positive_resolution_rejected(self, resolution):
        with pytest.raises(ValueError):
            Visualizer(resolution=resolution)

    def test_small_resolution_renders(self):
        vis = Visualizer(resolution=(160, 120))
        state = HeartbeatState()
        frame = vis.render(state, _waveform(vis, state), [], _values())
        assert frame.shape == (120, 160, 3)

    def test_background_shape(self):
        vis = Visualizer(resolution=RES)
        frame = vis.new_frame()
        assert frame.shape == (240, 320, 3)
        assert frame.dtype == np.uint8
        # Gradient runs dark → slightly lighter toward the bottom right
        assert int(frame[-1, -1].sum()) > int(frame[0, 0].sum())

    def test_render_returns_full_frame(self):
        vis = Visualizer(resolution=RES, panel_height=120)
        state = HeartbeatState()
        frame = vis.render(state, _waveform(vis, state), [], _values())
        assert frame.shape == (240, 320, 3)
        assert frame.dtype == np.uint8
        assert not np.array_equal(frame, vis.new_frame())

    def test_particles_are_drawn(self, monkeypatch):
        vis = Visualizer(resolution=RES, panel_height=120, show_metrics=False)
        monkeypatch.setattr(vis, "_draw_ambient_dots", lambda *_: None)
        state = HeartbeatState()
        p = Particle(0.8, 0.2, 0.0, 0.0, 12.0, ParticleColor.MINT, ParticleShape.SQUARE)
        without = vis.render(state, None, [], _values())
        with_p = vis.render(state, None, [p], _values())
        x, y = vis.to_pixels(p.x, p.y)
        assert int(with_p[y, x].sum()) > int(without[y, x].sum())

    def test_faded_particles_skipped(self, monkeypatch):
        vis = Visualizer(resolution=RES, panel_height=120, show_metrics=False)
        monkeypatch.setattr(vis, "_draw_ambient_dots", lambda *_: None)
        state = HeartbeatState()
        p = Particle(0.8, 0.2, 0.0, 0.0, 12.0, ParticleColor.MINT, ParticleShape.CIRCLE,
                     opacity=0.0, active=False)
        a = vis.render(state, None, [], _values())
        b = vis.render(state, None, [p], _values())
        x, y = vis.to_pixels(p.x, p.y)
        assert np.array_equal(a[y, x], b[y, x])

    def test_pulse_glow_tints_red(self):
        vis = Visualizer(resolution=RES, panel_height=120, show_metrics=False)
        frame = vis.new_frame()
        vis._draw_pulse_glow(frame, 1.0)
        ox, oy = vis.to_pixels(*vis.origin)
        assert frame[oy, ox, 2] > vis.new_frame()[oy, ox, 2]

    def test_toggle_metrics(self):
        vis = Visualizer(resolution=RES)
        assert vis.show_metrics
        assert vis.toggle_metrics() is False
        assert vis.toggle_metrics() is True

    def test_renders_scheduler_output(self):
        sched = HeartbeatScheduler(seed=1)
        sched.start(0.0)
        sched.trigger_heartbeat(0.0)
        sched.update(0.1)
        vis = Visualizer(resolution=RES, panel_height=120, origin=sched.origin)
        st = sched.state
        frame = vis.render(st, _waveform(vis, st), sched.particles, sched.display_values())
        assert frame.shape == (240, 320, 3)
