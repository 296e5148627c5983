"""Batch jobs: stats aggregation, monthly stats notification, playback cleanup"""
