"""
Distributed Command Queue

A distributed job queue for shell commands: producers submit jobs, workers
claim and run each one exactly once, and clients query or cancel jobs by id.
Every state change is a single atomic transition over a shared pending queue
and job record store.
"""

__version__ = "1.0.0"
