# PATH: monitoring/__init__.py
"""
Monitoring package for the gas oracle.
"""

from monitoring.health import SamplerHealth

__all__ = [
    "SamplerHealth",
]
