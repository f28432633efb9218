"""Core components for AQT simulation.

This module contains the fundamental classes for round-based simulation,
including Packet, Buffer, Link, Network, the forwarding protocols, thresholds,
recorders and the Simulation driver.
"""
