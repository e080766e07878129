"""
Heartbeat Data Flow — animated ECG visualisation.
A simulated PQRST waveform scrolls across the screen while every
heartbeat emits a burst of data particles from a pulsing origin point.
"""

__version__ = "0.1.0"
__author__ = "heartbeat_flow"
