"""Audit logic: tolerance comparison, per-item audits, comprehensive engine."""
