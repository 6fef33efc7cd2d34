"""
Sweeper module.
Contains the periodic re-dispatcher for entries abandoned by crashed workers.
"""

from entryflow.sweeper.main import Sweeper, run

__all__ = ["Sweeper", "run"]
