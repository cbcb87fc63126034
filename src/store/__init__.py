"""Dataset registry and versioning layer.

This module keeps live datasets, their immutable version histories,
and the JSON catalog that persists both between runs.
"""
