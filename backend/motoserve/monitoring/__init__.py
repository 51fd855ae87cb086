"""Prometheus metrics for the motoserve booking core."""
