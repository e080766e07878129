"""
Synthetic ECG waveform sampler.

Shape
-----
One stylised cardiac cycle is laid out over the unit interval of
``cycle_pos = (progress - phase) mod 1``:

  * 0.20 – 0.30  P-wave    small upward bump
  * 0.35 – 0.50  QRS       Q dip, tall R spike, S dip
  * 0.55 – 0.75  T-wave    broad upward bump

Everything outside these ranges is flat apart from a small sinusoidal
baseline ripple.  Offsets are in pixels with screen orientation, so a
*negative* offset draws the trace upward.

The sampler is stateless; the caller advances ``phase`` every frame and
redraws the resulting polyline.
"""

from __future__ import annotations

from typing import List, Tuple, Union

import numpy as np

ArrayLike = Union[float, np.ndarray]

# Feature ranges within one cycle (open intervals)
P_WAVE   = (0.20, 0.30)
QRS      = (0.35, 0.50)
T_WAVE   = (0.55, 0.75)

# Peak heights in pixels at amplitude 1.0
P_HEIGHT = 15.0
Q_DEPTH  = 8.0
R_HEIGHT = 80.0
S_DEPTH  = 20.0
T_HEIGHT = 25.0

BASELINE_RIPPLE = 3.0
BASELINE_CYCLES = 8.0      # half-periods of ripple across the width

DEFAULT_SAMPLES = 300


def cardiac_offset(
    cycle_pos: ArrayLike,
    amplitude: float = 1.0,
    pulse_intensity: float = 0.0,
) -> ArrayLike:
    """
    Vertical PQRST offset for one or more positions within the cycle.

    Parameters
    ----------
    cycle_pos:
        Scalar or array of cycle positions in [0, 1).
    amplitude:
        Overall gain applied to every feature.
    pulse_intensity:
        Beat impulse (0 – 1); boosts only the R spike by up to 50 %.

    Returns a float for scalar input, otherwise an array of the same shape.
    """
    pos = np.asarray(cycle_pos, dtype=np.float64)
    scalar = pos.ndim == 0
    pos = np.atleast_1d(pos)
    offset = np.zeros_like(pos)

    p_mask = (pos > P_WAVE[0]) & (pos < P_WAVE[1])
    p = (pos[p_mask] - P_WAVE[0]) / (P_WAVE[1] - P_WAVE[0])
    offset[p_mask] -= np.sin(p * np.pi) * P_HEIGHT * amplitude

    qrs_mask = (pos > QRS[0]) & (pos < QRS[1])
    q = (pos - QRS[0]) / (QRS[1] - QRS[0])

    q_mask = qrs_mask & (q < 0.2)
    offset[q_mask] += np.sin(q[q_mask] * np.pi * 5) * Q_DEPTH * amplitude

    r_mask = qrs_mask & (q >= 0.2) & (q < 0.6)
    r = (q[r_mask] - 0.2) / 0.4
    offset[r_mask] -= (
        np.sin(r * np.pi) * R_HEIGHT * amplitude * (1.0 + pulse_intensity * 0.5)
    )

    s_mask = qrs_mask & (q >= 0.6)
    s = (q[s_mask] - 0.6) / 0.4
    offset[s_mask] += np.sin(s * np.pi) * S_DEPTH * amplitude

    t_mask = (pos > T_WAVE[0]) & (pos < T_WAVE[1])
    t = (pos[t_mask] - T_WAVE[0]) / (T_WAVE[1] - T_WAVE[0])
    offset[t_mask] -= np.sin(t * np.pi) * T_HEIGHT * amplitude

    if scalar:
        return float(offset[0])
    return offset


def max_offset(amplitude: float = 1.0, pulse_intensity: float = 0.0) -> float:
    """Upper bound on ``|offset|`` for the given gain, ripple included."""
    return R_HEIGHT * amplitude * (1.0 + pulse_intensity * 0.5) + BASELINE_RIPPLE


class WaveformGenerator:
    """
    Samples the ECG trace across a panel of a given size.

    Parameters
    ----------
    samples:
        Number of points in the polyline.  At least 2, so the first and
        last points land exactly on x = 0 and x = width.
    """

    def __init__(self, samples: int = DEFAULT_SAMPLES) -> None:
        if samples < 2:
            raise ValueError(f"samples must be >= 2, got {samples}")
        self.samples = int(samples)
        self._progress = np.linspace(0.0, 1.0, self.samples)

    @property
    def progress(self) -> np.ndarray:
        """Horizontal sample positions in [0, 1]."""
        return self._progress

    def cycle_positions(self, phase: float) -> np.ndarray:
        return np.mod(self._progress - phase, 1.0)

    def offsets(
        self,
        phase: float,
        amplitude: float = 1.0,
        pulse_intensity: float = 0.0,
    ) -> np.ndarray:
        """Vertical offset of every sample (baseline ripple + PQRST)."""
        shifted = self._progress - phase
        ripple = np.sin(shifted * np.pi * BASELINE_CYCLES) * BASELINE_RIPPLE
        return ripple + cardiac_offset(
            np.mod(shifted, 1.0), amplitude, pulse_intensity
        )

    def sample(
        self,
        phase: float,
        amplitude: float = 1.0,
        pulse_intensity: float = 0.0,
        width: float = 1.0,
        height: float = 0.0,
    ) -> np.ndarray:
        """
        Return an ``(N, 2)`` float array of ``(x, y)`` points.

        ``x`` spans ``[0, width]``; ``y`` is centred on ``height / 2``.
        """
        xs = self._progress * width
        ys = height / 2.0 + self.offsets(phase, amplitude, pulse_intensity)
        return np.column_stack([xs, ys])

    def polyline(
        self,
        phase: float,
        amplitude: float,
        pulse_intensity: float,
        size: Tuple[int, int],
        origin: Tuple[int, int] = (0, 0),
    ) -> np.ndarray:
        """
        Integer points shaped ``(N, 1, 2)`` for ``cv2.polylines``.

        Parameters
        ----------
        size:
            (width, height) of the panel the trace is drawn into.
        origin:
            Top-left pixel of that panel within the frame.
        """
        w, h = size
        pts = self.sample(phase, amplitude, pulse_intensity, w, h)
        pts += np.asarray(origin, dtype=np.float64)
        return np.round(pts).astype(np.int32)[:, None, :]


def ecg_grid(
    width: int,
    height: int,
    spacing: int = 20,
) -> List[Tuple[Tuple[int, int], Tuple[int, int]]]:
    """Line segments of a square background grid, vertical lines first."""
    if spacing <= 0:
        raise ValueError(f"spacing must be positive, got {spacing}")
    lines = [((x, 0), (x, height)) for x in range(0, width + 1, spacing)]
    lines += [((0, y), (width, y)) for y in range(0, height + 1, spacing)]
    return lines
