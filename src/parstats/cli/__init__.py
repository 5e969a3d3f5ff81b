"""Command-line interface for parstats.

Usage:
    parstats units [--config PATH] [--env ENV]
    parstats sequential
    parstats array-task [INDEX]
    parstats parallel [--max-workers N]
    parstats combine
    parstats missing
    parstats render {array,mpi,sequential,combine} [--output PATH]
    parstats submit {array,mpi,sequential}
    parstats sample-data {flights,wages} PATH
"""

from .app import app, main

__all__ = ["app", "main"]
