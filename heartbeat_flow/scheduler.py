"""
Heartbeat timing.

Three periodic drivers share one monotonic timeline:

  * render  – every ``frame_interval`` (16 ms): advance the waveform phase,
              age the particles, refresh the signal-strength reading.
  * beat    – every ``60 / bpm`` seconds: fire the pulse impulse, emit a
              particle burst and pick the next BPM.
  * clock   – every second: bump the elapsed-time counter.

The host loop calls :meth:`HeartbeatScheduler.update` with the current time
as often as it can; every event that has come due since the previous call
is fired in time order.  There is no threading.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from heartbeat_flow.particles import ParticleSystem

logger = logging.getLogger(__name__)


def format_elapsed(seconds: int) -> str:
    """Format a second count as ``mm:ss``."""
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins:02d}:{secs:02d}"


def pulse_envelope(dt: float, hold: float = 0.15, release: float = 0.30) -> float:
    """
    Pulse intensity ``dt`` seconds after a beat.

    Full strength for ``hold`` seconds, then an ease-in fall to zero over
    ``release`` seconds.
    """
    if dt < 0.0:
        return 0.0
    if dt <= hold:
        return 1.0
    if release <= 0.0:
        return 0.0
    u = (dt - hold) / release
    if u >= 1.0:
        return 0.0
    return 1.0 - u * u


@dataclass
class HeartbeatState:
    phase:            float = 0.0
    pulse_intensity:  float = 0.0
    amplitude:        float = 1.0
    bpm:              int = 72
    signal_strength:  float = 0.95
    elapsed_seconds:  int = 0

    @property
    def signal_percent(self) -> int:
        """Signal strength as a 0 – 100 integer for display."""
        return int(round(min(1.0, max(0.0, self.signal_strength)) * 100))

    @property
    def elapsed_text(self) -> str:
        return format_elapsed(self.elapsed_seconds)


@dataclass(frozen=True)
class DisplayValues:
    """Scalar readouts handed to the HUD each frame."""
    bpm:               int
    signal_percent:    int
    data_processed:    int
    active_particles:  int
    elapsed:           str


class HeartbeatScheduler:
    """
    Drives :class:`HeartbeatState` and a :class:`ParticleSystem` in time.

    Parameters
    ----------
    particles:
        Particle system to tick and burst.  A new one is created (sharing
        the seed) when omitted.
    bpm:
        Heart rate until the first beat re-draws it.
    bpm_range:
        Inclusive range each beat draws the next BPM from.
    frame_interval:
        Render tick period in seconds.
    phase_step:
        Waveform phase advance per render tick.
    origin:
        Normalised burst origin within the ECG panel.
    pulse_hold, pulse_release:
        Shape of the pulse envelope, see :func:`pulse_envelope`.
    peak_amplitude:
        Waveform amplitude at full pulse; it relaxes to 1.0 with the pulse.
    max_catchup:
        Most render ticks run by a single :meth:`update`.  Older overdue
        frames are dropped, and a run of missed beats collapses into one
        beat at the current time.
    seed:
        Seed for BPM draws (and for the default particle system).
    clock:
        Zero-argument callable returning monotonic seconds.
    """

    def __init__(
        self,
        particles: Optional[ParticleSystem] = None,
        bpm: int = 72,
        bpm_range: Tuple[int, int] = (68, 76),
        frame_interval: float = 0.016,
        phase_step: float = 0.02,
        origin: Tuple[float, float] = (0.15, 0.5),
        pulse_hold: float = 0.15,
        pulse_release: float = 0.30,
        peak_amplitude: float = 1.3,
        max_catchup: int = 10,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if bpm <= 0:
            raise ValueError(f"bpm must be positive, got {bpm}")
        if bpm_range[0] > bpm_range[1] or bpm_range[0] <= 0:
            raise ValueError(f"Invalid bpm range: {bpm_range}")
        if frame_interval <= 0:
            raise ValueError(f"frame_interval must be positive, got {frame_interval}")
        if max_catchup < 1:
            raise ValueError(f"max_catchup must be >= 1, got {max_catchup}")

        bpm_seed, particle_seed = np.random.SeedSequence(seed).spawn(2)
        self.particles = particles if particles is not None else ParticleSystem(seed=particle_seed)
        self.rng = np.random.default_rng(bpm_seed)

        self.initial_bpm = int(bpm)
        self.bpm_range = bpm_range
        self.frame_interval = frame_interval
        self.phase_step = phase_step
        self.origin = origin
        self.pulse_hold = pulse_hold
        self.pulse_release = pulse_release
        self.peak_amplitude = peak_amplitude
        self.max_catchup = max_catchup
        self.clock = clock

        self.state = HeartbeatState(bpm=self.initial_bpm)

        self._running = False
        self._next_frame = 0.0
        self._next_beat = 0.0
        self._next_second = 0.0
        self._last_beat_at: Optional[float] = None
        self._dropped_frames = 0
        self._coalesced_beats = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, now: Optional[float] = None) -> None:
        """Arm all three drivers relative to ``now``."""
        if now is None:
            now = self.clock()
        self._next_frame = now + self.frame_interval
        self._next_beat = now + self.beat_period
        self._next_second = now + 1.0
        self._running = True
        logger.info(
            "Heartbeat started – bpm=%d frame_interval=%.3fs",
            self.state.bpm, self.frame_interval,
        )

    def stop(self) -> None:
        """Halt all drivers; later :meth:`update` calls do nothing."""
        if self._running:
            logger.info("Heartbeat stopped after %s.", self.state.elapsed_text)
        self._running = False

    def reset(self, now: Optional[float] = None) -> None:
        """Restore the initial state and clear the particles."""
        self.state = HeartbeatState(bpm=self.initial_bpm)
        self.particles.clear()
        self._last_beat_at = None
        self._dropped_frames = 0
        self._coalesced_beats = 0
        if self._running:
            self.start(now)

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    def update(self, now: Optional[float] = None) -> int:
        """
        Fire every render, beat and clock event due at ``now``.

        Returns the number of render ticks that ran.
        """
        if not self._running:
            return 0
        if now is None:
            now = self.clock()

        overdue = self._overdue_frames(now)
        if overdue > self.max_catchup:
            skipped = overdue - self.max_catchup
            self._next_frame += skipped * self.frame_interval
            self._dropped_frames += skipped
            logger.debug("Dropped %d render frames (host stalled).", skipped)

        # Several missed beats collapse into a single beat at ``now``
        if now - self._next_beat >= self.beat_period:
            missed = int((now - self._next_beat) / self.beat_period) + 1
            self._next_beat = now
            self._coalesced_beats += missed - 1
            logger.debug("Coalesced %d missed beats (host stalled).", missed)

        frames = 0
        while True:
            due = min(self._next_frame, self._next_beat, self._next_second)
            if due > now:
                break
            if due == self._next_beat:
                self.trigger_heartbeat(due)
            elif due == self._next_second:
                self.state.elapsed_seconds += 1
                self._next_second += 1.0
            else:
                self.render_tick(due)
                self._next_frame += self.frame_interval
                frames += 1

        self._refresh_pulse(now)
        return frames

    def render_tick(self, at: Optional[float] = None) -> None:
        """One animation frame: phase, particles, signal strength."""
        st = self.state
        st.phase += self.phase_step
        self.particles.tick()
        st.signal_strength = 0.92 + math.sin(st.phase * 3.0) * 0.05
        if at is not None:
            self._refresh_pulse(at)

    def trigger_heartbeat(self, at: Optional[float] = None) -> int:
        """
        Fire one beat at time ``at`` and schedule the next.

        Returns the number of particles emitted.
        """
        if at is None:
            at = self.clock()
        st = self.state
        self._last_beat_at = at
        st.pulse_intensity = 1.0
        st.amplitude = self.peak_amplitude

        count = len(self.particles.burst(self.origin))

        low, high = self.bpm_range
        st.bpm = int(self.rng.integers(low, high + 1))
        self._next_beat = at + self.beat_period
        logger.debug("Beat at %.3f – burst=%d next bpm=%d", at, count, st.bpm)
        return count

    # ------------------------------------------------------------------
    # Read-outs
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def beat_period(self) -> float:
        """Seconds until the next beat at the current BPM."""
        return 60.0 / self.state.bpm

    @property
    def next_beat_at(self) -> float:
        return self._next_beat

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    @property
    def coalesced_beats(self) -> int:
        return self._coalesced_beats

    @property
    def signal_percent(self) -> int:
        return self.state.signal_percent

    @property
    def elapsed_text(self) -> str:
        return self.state.elapsed_text

    def display_values(self) -> DisplayValues:
        return DisplayValues(
            bpm=self.state.bpm,
            signal_percent=self.state.signal_percent,
            data_processed=self.particles.data_processed,
            active_particles=self.particles.active_count,
            elapsed=self.state.elapsed_text,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _overdue_frames(self, now: float) -> int:
        if now < self._next_frame:
            return 0
        return int((now - self._next_frame) / self.frame_interval) + 1

    def _refresh_pulse(self, now: float) -> None:
        st = self.state
        if self._last_beat_at is None:
            st.pulse_intensity = 0.0
            st.amplitude = 1.0
            return
        pulse = pulse_envelope(now - self._last_beat_at, self.pulse_hold, self.pulse_release)
        st.pulse_intensity = pulse
        st.amplitude = 1.0 + (self.peak_amplitude - 1.0) * pulse
