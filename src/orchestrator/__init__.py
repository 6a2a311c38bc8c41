"""
Orchestrator package initializer.
Exposes the Orchestrator that loads the dataset once and runs report batches.
"""

from .orchestrator import Orchestrator

__all__ = ["Orchestrator"]
