"""Shared configuration, types, errors, and events.

This module holds the runtime pieces every other layer depends on.
"""
