"""
ESG Scoring Service Package

Stores organizations' ESG parameters, computes weighted environmental,
social and governance scores and estimates the effect of parameter changes.
"""

__version__ = "0.1.0"
from .app import app
from .config import settings

__all__ = ["app", "settings"]
