"""
OpenCV renderer for the heartbeat data-flow scene.

Draws the following elements onto each frame:
  • A dark gradient background with a red glow that swells on every beat
    and a field of slowly drifting ambient dots.
  • An ECG panel: faint grid, glowing gradient waveform, particles.
  • A pulsing origin orb with a heart marker where bursts are emitted.
  • Vital-sign and metric cards (toggleable) plus a footer caption.
  • Optional frame-rate counter.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from heartbeat_flow.particles import Particle, ParticleColor, ParticleShape
from heartbeat_flow.scheduler import DisplayValues, HeartbeatState
from heartbeat_flow.waveform import ecg_grid


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_RED    = (48,  59, 255)
_PINK   = (85,  45, 255)
_CYAN   = ParticleColor.CYAN.bgr
_BLUE   = ParticleColor.BLUE.bgr
_MINT   = ParticleColor.MINT.bgr
_PURPLE = ParticleColor.PURPLE.bgr
_WHITE  = (255, 255, 255)
_BLACK  = (0, 0, 0)
_CARD   = (40, 28, 22)

# Background gradient corners, top-left → bottom-right
_BG_TOP    = (15,  5,  3)
_BG_BOTTOM = (31, 10,  8)

# Waveform stroke gradient, left → right
_WAVE_STOPS = (_CYAN, _BLUE, _MINT, _CYAN)

_AMBIENT_DOTS = 30
_AMBIENT_PERIOD = 20.0   # seconds for the dot field to drift one screen height

_FONT = cv2.FONT_HERSHEY_SIMPLEX


def gradient_color(stops, t: float) -> Tuple[int, int, int]:
    """Linear interpolation through evenly spaced colour stops, ``t`` in [0, 1]."""
    t = min(max(t, 0.0), 1.0)
    pos = t * (len(stops) - 1)
    idx = min(int(pos), len(stops) - 2)
    frac = pos - idx
    a = np.asarray(stops[idx], dtype=np.float64)
    b = np.asarray(stops[idx + 1], dtype=np.float64)
    return tuple(int(c) for c in a * (1 - frac) + b * frac)


def shape_polygon(
    shape: ParticleShape,
    center: Tuple[float, float],
    size: float,
) -> np.ndarray:
    """Vertices (int32, ``(K, 2)``) of a particle shape fitted in a ``size`` box."""
    cx, cy = center
    half = size / 2.0
    if shape is ParticleShape.DIAMOND:
        pts = [(cx, cy - half), (cx + half, cy), (cx, cy + half), (cx - half, cy)]
    elif shape is ParticleShape.HEXAGON:
        angles = np.arange(6) * np.pi / 3 - np.pi / 2
        pts = np.column_stack([cx + half * np.cos(angles), cy + half * np.sin(angles)])
    else:
        pts = [(cx - half, cy - half), (cx + half, cy - half),
               (cx + half, cy + half), (cx - half, cy + half)]
    return np.round(np.asarray(pts, dtype=np.float64)).astype(np.int32)


def heart_polygon(center: Tuple[float, float], size: float) -> np.ndarray:
    """Classic parametric heart outline scaled to roughly ``size`` pixels wide."""
    t = np.linspace(0, 2 * np.pi, 48, endpoint=False)
    xs = 16 * np.sin(t) ** 3
    ys = 13 * np.cos(t) - 5 * np.cos(2 * t) - 2 * np.cos(3 * t) - np.cos(4 * t)
    k = size / 32.0
    pts = np.column_stack([center[0] + xs * k, center[1] - ys * k])
    return np.round(pts).astype(np.int32)


class Visualizer:
    """
    Renders heartbeat scene frames with OpenCV.

    Parameters
    ----------
    resolution:
        (width, height) of the output frame.
    panel_height:
        Pixel height of the ECG panel, centred vertically.
    padding:
        Horizontal margin on each side of the ECG panel.
    origin:
        Normalised burst origin inside the panel (orb and heart position).
    show_metrics:
        Whether the vital-sign and metric cards are drawn.
    show_fps:
        Whether to overlay computed FPS in the top-right corner.
    grid_spacing:
        Pixel spacing of the ECG grid.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (960, 720),
        panel_height: int = 300,
        padding: int = 40,
        origin: Tuple[float, float] = (0.15, 0.5),
        show_metrics: bool = True,
        show_fps: bool = False,
        grid_spacing: int = 20,
    ) -> None:
        self.w, self.h = resolution
        if self.w <= 0 or self.h <= 0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        self.padding = padding
        self.origin = origin
        self.show_metrics = show_metrics
        self.show_fps = show_fps

        # ECG panel rectangle
        panel_h = min(panel_height, self.h)
        panel_w = max(1, self.w - 2 * padding)
        self.panel = (padding, (self.h - panel_h) // 2, panel_w, panel_h)  # x, y, w, h
        self._grid = ecg_grid(panel_w, panel_h, grid_spacing)

        # Static layers
        self._background = self._build_background()
        self._glow_mask = self._build_glow_mask()

        # FPS tracking
        self._fps_tick = cv2.getTickCount()
        self._fps_display: float = 0.0
        self._start_time = cv2.getTickCount()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def panel_size(self) -> Tuple[int, int]:
        return self.panel[2], self.panel[3]

    @property
    def panel_origin(self) -> Tuple[int, int]:
        return self.panel[0], self.panel[1]

    def to_pixels(self, x: float, y: float) -> Tuple[int, int]:
        """Map a normalised panel position to frame pixel coordinates."""
        px, py, pw, ph = self.panel
        return int(round(px + x * pw)), int(round(py + y * ph))

    def toggle_metrics(self) -> bool:
        self.show_metrics = not self.show_metrics
        return self.show_metrics

    def new_frame(self) -> np.ndarray:
        """A fresh copy of the background gradient."""
        return self._background.copy()

    def render(
        self,
        state: HeartbeatState,
        waveform: Optional[np.ndarray],
        particles: Iterable[Particle],
        values: DisplayValues,
    ) -> np.ndarray:
        """Draw a complete frame from scratch and return it."""
        return self.draw(self.new_frame(), state, waveform, particles, values)

    def draw(
        self,
        frame: np.ndarray,
        state: HeartbeatState,
        waveform: Optional[np.ndarray],
        particles: Iterable[Particle],
        values: DisplayValues,
    ) -> np.ndarray:
        """
        Annotate *frame* in-place and return it.

        Parameters
        ----------
        frame:
            BGR frame, normally from :meth:`new_frame`.
        state:
            Current heartbeat state (pulse, signal strength).
        waveform:
            ``(N, 1, 2)`` int32 ECG polyline in frame coordinates.
        particles:
            Live particles, positions normalised to the ECG panel.
        values:
            HUD readouts.
        """
        self._update_fps()

        # --- Background effects ------------------------------------------------
        self._draw_pulse_glow(frame, state.pulse_intensity)
        self._draw_ambient_dots(frame, state.signal_strength)

        # --- ECG panel ---------------------------------------------------------
        self._draw_grid(frame)
        if waveform is not None and len(waveform) > 1:
            self._draw_waveform(frame, waveform)
        self._draw_particles(frame, particles)
        self._draw_origin(frame, state.pulse_intensity)

        # --- HUD ---------------------------------------------------------------
        if self.show_metrics:
            self._draw_vital_cards(frame, values)
            self._draw_metric_cards(frame, values)
        self._draw_toggle_hint(frame)

        # --- FPS counter -------------------------------------------------------
        if self.show_fps:
            cv2.putText(
                frame,
                f"FPS {self._fps_display:.1f}",
                (self.w - 100, 20),
                _FONT, 0.45, _WHITE, 1, cv2.LINE_AA,
            )

        return frame

    # ------------------------------------------------------------------
    # Static layers
    # ------------------------------------------------------------------

    def _build_background(self) -> np.ndarray:
        # Diagonal gradient: t = (x/w + y/h) / 2
        ys, xs = np.mgrid[0:self.h, 0:self.w].astype(np.float64)
        t = ((xs / max(self.w - 1, 1)) + (ys / max(self.h - 1, 1))) / 2.0
        top = np.asarray(_BG_TOP, dtype=np.float64)
        bottom = np.asarray(_BG_BOTTOM, dtype=np.float64)
        bg = top[None, None, :] * (1 - t[..., None]) + bottom[None, None, :] * t[..., None]
        return bg.astype(np.uint8)

    def _build_glow_mask(self) -> np.ndarray:
        """Radial falloff (1 at the origin, 0 at 500 px) for the beat glow."""
        cx, cy = self.to_pixels(*self.origin)
        ys, xs = np.mgrid[0:self.h, 0:self.w].astype(np.float64)
        dist = np.hypot(xs - cx, ys - cy)
        return np.clip(1.0 - dist / 500.0, 0.0, 1.0)

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_pulse_glow(self, frame: np.ndarray, pulse: float) -> None:
        if pulse <= 0.0:
            return
        alpha = (self._glow_mask * pulse * 0.15)[..., None]
        red = np.asarray(_RED, dtype=np.float64)[None, None, :]
        blended = frame.astype(np.float64) * (1 - alpha) + red * alpha
        frame[:] = blended.astype(np.uint8)

    def _draw_ambient_dots(self, frame: np.ndarray, signal: float) -> None:
        elapsed = (cv2.getTickCount() - self._start_time) / cv2.getTickFrequency()
        drift = (elapsed / _AMBIENT_PERIOD) * self.h
        radius = max(1, int(round((2.0 + signal * 2.0) / 2)))
        opacity = signal * 0.3 + 0.1
        color = tuple(int(c * opacity) for c in _CYAN)

        layer = np.zeros_like(frame)
        for i in range(_AMBIENT_DOTS):
            x = (i * self.w / _AMBIENT_DOTS + drift * 0.2) % self.w
            y = (i * 19 + drift + math.sin(i * 0.4) * 40) % self.h
            cv2.circle(layer, (int(x), int(y)), radius, color, -1, cv2.LINE_AA)
        cv2.add(frame, layer, dst=frame)

    def _draw_grid(self, frame: np.ndarray) -> None:
        px, py, _, _ = self.panel
        overlay = frame.copy()
        for (x0, y0), (x1, y1) in self._grid:
            cv2.line(overlay, (px + x0, py + y0), (px + x1, py + y1), _CYAN, 1)
        cv2.addWeighted(overlay, 0.15, frame, 0.85, 0, dst=frame)

    def _draw_waveform(self, frame: np.ndarray, pts: np.ndarray) -> None:
        """Blurred halo underneath, then a gradient stroke on top."""
        glow = np.zeros_like(frame)
        cv2.polylines(glow, [pts], False, _CYAN, 10, cv2.LINE_AA)
        glow = cv2.GaussianBlur(glow, (0, 0), sigmaX=8)
        cv2.add(frame, glow, dst=frame)

        flat = pts.reshape(-1, 2)
        n = len(flat)
        for i in range(n - 1):
            color = gradient_color(_WAVE_STOPS, i / max(n - 2, 1))
            p0 = (int(flat[i][0]), int(flat[i][1]))
            p1 = (int(flat[i + 1][0]), int(flat[i + 1][1]))
            cv2.line(frame, p0, p1, color, 4, cv2.LINE_AA)

    def _draw_particles(self, frame: np.ndarray, particles: Iterable[Particle]) -> None:
        layer = np.zeros_like(frame)
        for p in particles:
            if not p.active or p.opacity <= 0:
                continue
            cx, cy = self.to_pixels(p.x, p.y)
            if not (0 <= cx < self.w and 0 <= cy < self.h):
                continue
            color = tuple(int(c * p.opacity) for c in p.color.bgr)
            size = max(1.0, p.draw_size)
            if p.shape is ParticleShape.CIRCLE:
                cv2.circle(layer, (cx, cy), max(1, int(round(size / 2))), color, -1, cv2.LINE_AA)
            else:
                poly = shape_polygon(p.shape, (cx, cy), size)
                cv2.fillPoly(layer, [poly], color, cv2.LINE_AA)

        # Soft glow plus the crisp particles
        halo = cv2.GaussianBlur(layer, (0, 0), sigmaX=4)
        cv2.add(frame, halo, dst=frame)
        cv2.add(frame, layer, dst=frame)

    def _draw_origin(self, frame: np.ndarray, pulse: float) -> None:
        center = self.to_pixels(*self.origin)
        beat = math.sin(pulse * math.pi * 2)

        orb = np.zeros_like(frame)
        orb_r = max(1, int(30 * (1.0 + beat * 0.3)))
        cv2.circle(orb, center, orb_r, _RED, -1, cv2.LINE_AA)
        orb = cv2.GaussianBlur(orb, (0, 0), sigmaX=max(1.0, orb_r / 3))
        cv2.add(frame, orb, dst=frame)

        heart = heart_polygon(center, 28 * (1.0 + beat * 0.2))
        cv2.fillPoly(frame, [heart], _PINK, cv2.LINE_AA)
        cv2.polylines(frame, [heart], True, _RED, 2, cv2.LINE_AA)

    def _draw_card(
        self,
        frame: np.ndarray,
        rect: Tuple[int, int, int, int],
        color: Tuple[int, int, int],
    ) -> None:
        x, y, w, h = rect
        overlay = frame.copy()
        cv2.rectangle(overlay, (x, y), (x + w, y + h), _CARD, -1)
        cv2.addWeighted(overlay, 0.7, frame, 0.3, 0, dst=frame)
        cv2.rectangle(frame, (x, y), (x + w, y + h), color, 1, cv2.LINE_AA)

    def _draw_vital_cards(self, frame: np.ndarray, values: DisplayValues) -> None:
        card_w = min(220, (self.w - 72) // 2)
        cards = (
            ("HEART RATE", f"{values.bpm}", "BPM", _RED),
            ("SIGNAL", f"{values.signal_percent}", "%", _CYAN),
        )
        for i, (title, value, unit, col) in enumerate(cards):
            x = 24 + i * (card_w + 16)
            y = 24
            self._draw_card(frame, (x, y, card_w, 70), col)
            cv2.putText(frame, title, (x + 14, y + 22), _FONT, 0.4, _WHITE, 1, cv2.LINE_AA)
            cv2.putText(frame, value, (x + 14, y + 56), _FONT, 1.1, _BLACK, 4, cv2.LINE_AA)
            cv2.putText(frame, value, (x + 14, y + 56), _FONT, 1.1, col, 2, cv2.LINE_AA)
            (tw, _), _ = cv2.getTextSize(value, _FONT, 1.1, 2)
            cv2.putText(frame, unit, (x + 20 + tw, y + 56), _FONT, 0.5, col, 1, cv2.LINE_AA)

    def _draw_metric_cards(self, frame: np.ndarray, values: DisplayValues) -> None:
        cards = (
            ("DATA POINTS", f"{values.data_processed}", _BLUE),
            ("ACTIVE PARTICLES", f"{values.active_particles}", _MINT),
            ("RUNTIME", values.elapsed, _PURPLE),
        )
        gap = 16
        card_w = (self.w - 48 - gap * (len(cards) - 1)) // len(cards)
        y = self.h - 120
        for i, (label, value, col) in enumerate(cards):
            x = 24 + i * (card_w + gap)
            self._draw_card(frame, (x, y, card_w, 58), col)
            cv2.putText(frame, value, (x + 12, y + 28), _FONT, 0.7, col, 2, cv2.LINE_AA)
            cv2.putText(frame, label, (x + 12, y + 48), _FONT, 0.35, _WHITE, 1, cv2.LINE_AA)

        caption = "BIOMEDICAL DATA VISUALIZATION - REAL-TIME ANALYSIS"
        (tw, _), _ = cv2.getTextSize(caption, _FONT, 0.35, 1)
        cv2.putText(
            frame, caption,
            ((self.w - tw) // 2, self.h - 36), _FONT, 0.35, (110, 110, 110), 1, cv2.LINE_AA,
        )

    def _draw_toggle_hint(self, frame: np.ndarray) -> None:
        label = "[m] Hide Metrics" if self.show_metrics else "[m] Show Metrics"
        (tw, _), _ = cv2.getTextSize(label, _FONT, 0.4, 1)
        y = self.h - 136 if self.show_metrics else self.h - 24
        cv2.putText(frame, label, (self.w - tw - 24, y), _FONT, 0.4, _WHITE, 1, cv2.LINE_AA)

    def _update_fps(self) -> None:
        """Compute rolling FPS."""
        now = cv2.getTickCount()
        elapsed = (now - self._fps_tick) / cv2.getTickFrequency()
        if elapsed > 0:
            self._fps_display = 1.0 / elapsed
        self._fps_tick = now
