"""Bridgewatch command line interface."""
