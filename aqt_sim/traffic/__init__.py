"""Packet injection for AQT simulation.

This module provides the adversaries that inject packets into the network,
including single-destination random, bursty (1, sigma) and preset patterns.
"""
