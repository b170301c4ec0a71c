"""Test suite for the universe simulation.

This package contains:
- Unit tests for the actor registry, particle field and force law
- Unit tests for the sampler, sliding windows and camera controller
- End-to-end checks of the simulation context
"""
