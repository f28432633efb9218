"""Utilities for AQT simulation: random numbers, metrics and plots."""
