"""
Heartbeat-synchronised particle engine.

Each heartbeat emits a burst of particles from a fixed origin point.
Particles drift rightward along the ECG trace, shrinking and fading a
fixed step every animation tick, and are dropped from the live set as
soon as they have faded out.

Positions and velocities are normalised to the ECG panel (0 – 1 on both
axes); the renderer scales them to pixels.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Repeated float subtraction leaves residue around zero; anything below
# this counts as fully faded.
_FADE_EPSILON = 1e-9


# ---------------------------------------------------------------------------
# Categorical attributes
# ---------------------------------------------------------------------------

class ParticleShape(Enum):
    CIRCLE  = "circle"
    SQUARE  = "square"
    DIAMOND = "diamond"
    HEXAGON = "hexagon"


class ParticleColor(Enum):
    # BGR, ready for OpenCV
    CYAN   = (230, 230,  50)
    BLUE   = (255, 122,   0)
    MINT   = (190, 225,   0)
    PURPLE = (222,  82, 175)

    @property
    def bgr(self) -> Tuple[int, int, int]:
        return self.value


# ---------------------------------------------------------------------------
# Particle record
# ---------------------------------------------------------------------------

@dataclass
class Particle:
    x:        float
    y:        float
    vx:       float
    vy:       float
    size:     float               # px, before scaling
    color:    ParticleColor
    shape:    ParticleShape
    opacity:  float = 1.0
    scale:    float = 1.0
    active:   bool = True
    id:       uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def position(self) -> Tuple[float, float]:
        return self.x, self.y

    @property
    def draw_size(self) -> float:
        """On-screen size in pixels once the shrink factor is applied."""
        return self.size * self.scale


# ---------------------------------------------------------------------------
# Particle system
# ---------------------------------------------------------------------------

class ParticleSystem:
    """
    Live particle collection advanced once per animation tick.

    Parameters
    ----------
    opacity_decay:
        Opacity removed every tick.  With the default 0.008 a particle
        lives for exactly 125 ticks (~2 s at 60 FPS).
    scale_decay:
        Scale removed every tick.
    min_scale:
        Floor for ``scale``; particles never shrink below this.
    burst_range:
        Inclusive ``(low, high)`` bounds for the random burst size.
    velocity_x, velocity_y:
        Inclusive bounds of the per-tick velocity components.  The default
        x range is strictly positive so bursts always flow rightward.
    size_range:
        Bounds of the particle size in pixels.
    palette, shapes:
        Categories that colours and shapes are drawn from uniformly.
    seed:
        Seed for the internal random generator.  ``None`` gives a fresh,
        non-reproducible stream.
    """

    def __init__(
        self,
        opacity_decay: float = 0.008,
        scale_decay: float = 0.005,
        min_scale: float = 0.1,
        burst_range: Tuple[int, int] = (15, 25),
        velocity_x: Tuple[float, float] = (0.003, 0.008),
        velocity_y: Tuple[float, float] = (-0.002, 0.002),
        size_range: Tuple[float, float] = (4.0, 12.0),
        palette: Sequence[ParticleColor] = tuple(ParticleColor),
        shapes: Sequence[ParticleShape] = tuple(ParticleShape),
        seed: Optional[int] = None,
    ) -> None:
        if burst_range[0] > burst_range[1]:
            raise ValueError(f"Empty burst range: {burst_range}")
        if not palette or not shapes:
            raise ValueError("palette and shapes must not be empty")

        self.opacity_decay = opacity_decay
        self.scale_decay = scale_decay
        self.min_scale = min_scale
        self.burst_range = burst_range
        self.velocity_x = velocity_x
        self.velocity_y = velocity_y
        self.size_range = size_range
        self.palette = list(palette)
        self.shapes = list(shapes)

        self.rng = np.random.default_rng(seed)
        self._particles: List[Particle] = []
        self._data_processed: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tick(self) -> int:
        """
        Advance every active particle by one frame, then drop faded ones.

        Returns the number of particles removed.
        """
        for p in self._particles:
            if not p.active:
                continue
            p.x += p.vx
            p.y += p.vy
            p.opacity -= self.opacity_decay
            p.scale = max(self.min_scale, p.scale - self.scale_decay)
            if p.opacity <= _FADE_EPSILON:
                p.opacity = 0.0
                p.active = False

        before = len(self._particles)
        self._particles = [p for p in self._particles if p.active]
        return before - len(self._particles)

    def burst(
        self,
        origin: Tuple[float, float],
        count: Optional[int] = None,
    ) -> List[Particle]:
        """
        Spawn ``count`` particles at ``origin`` and return them.

        When ``count`` is omitted it is drawn uniformly from
        ``burst_range``.  The cumulative :attr:`data_processed` counter
        grows by the same amount.
        """
        if count is None:
            count = self.draw_burst_size()
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        ox, oy = origin
        vxs = self.rng.uniform(*self.velocity_x, size=count)
        vys = self.rng.uniform(*self.velocity_y, size=count)
        sizes = self.rng.uniform(*self.size_range, size=count)
        colors = self.rng.integers(0, len(self.palette), size=count)
        shapes = self.rng.integers(0, len(self.shapes), size=count)

        spawned = [
            Particle(
                x=float(ox),
                y=float(oy),
                vx=float(vxs[i]),
                vy=float(vys[i]),
                size=float(sizes[i]),
                color=self.palette[colors[i]],
                shape=self.shapes[shapes[i]],
            )
            for i in range(count)
        ]
        self._particles.extend(spawned)
        self._data_processed += count
        logger.debug("Burst of %d particles at %s (live=%d)", count, origin, len(self))
        return spawned

    def draw_burst_size(self) -> int:
        low, high = self.burst_range
        return int(self.rng.integers(low, high + 1))

    def clear(self) -> None:
        """Drop all particles and zero the cumulative counter."""
        self._particles.clear()
        self._data_processed = 0

    @property
    def active_count(self) -> int:
        return sum(1 for p in self._particles if p.active)

    @property
    def data_processed(self) -> int:
        """Total number of particles ever spawned."""
        return self._data_processed

    def __len__(self) -> int:
        return len(self._particles)

    def __iter__(self) -> Iterator[Particle]:
        return iter(list(self._particles))
