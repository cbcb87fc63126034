"""Batch upload layer.

This module drives the content-addressed upload primitive over many
files with bounded concurrency, per-file timeouts, and live progress.
"""
