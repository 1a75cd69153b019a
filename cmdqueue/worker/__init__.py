"""
Worker module.
Contains the worker loop and the command executor.
"""

from cmdqueue.worker.executor import run_command
from cmdqueue.worker.main import Worker, run

__all__ = ["Worker", "run", "run_command"]
