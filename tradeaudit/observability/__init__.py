"""Prometheus metrics for audit runs."""
