"""
Pulse Monitor — fingertip photoplethysmography via a camera and torch.
Cover the camera lens with a fingertip; the system turns each frame into a
red+green brightness sample, detects falling crossings of the window mean
and converts their spacing into beats per minute.
"""

__version__ = "0.1.0"
__author__ = "pulse_monitor"
