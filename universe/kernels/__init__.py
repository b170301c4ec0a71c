"""Numeric kernels for the particle field.

The force law is a particle-actor interaction only: every particle reads
the same tiny actor table, so the whole step is one broadcasted tensor
expression over (particles x actors).
"""
from __future__ import annotations

__all__ = ["force_law", "runtime"]
