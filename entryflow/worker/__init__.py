"""
Worker module.
Contains the lease manager, stage processor, entry scheduler and dispatcher.
"""

from entryflow.worker.dispatcher import Dispatcher
from entryflow.worker.lease import LeaseManager
from entryflow.worker.processors import StageProcessor, register_handler
from entryflow.worker.scheduler import EntryScheduler

__all__ = [
    "LeaseManager",
    "StageProcessor",
    "register_handler",
    "EntryScheduler",
    "Dispatcher",
]
