"""Setuptools build hooks for opspool."""

from __future__ import annotations

from setuptools import setup

# Pure Python modules only; the default ``bdist_wheel`` produces a
# ``py3-none-any`` wheel.
setup()
