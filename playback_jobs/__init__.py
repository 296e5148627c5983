"""Scheduled batch jobs for playback statistics, monthly notifications and data cleanup"""

__version__ = "0.1.0"
