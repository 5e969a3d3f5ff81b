"""Allow ``python -m parstats`` (and ``python -m mpi4py.futures -m parstats``)."""

from .cli import main

if __name__ == "__main__":
    main()
