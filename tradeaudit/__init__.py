"""
Trade Audit Engine.

Tolerance audits, system-wide audit sweeps and the comprehensive
GO / NO-GO assessment for the simulated trading platform.
"""

__version__ = "1.0.0"
