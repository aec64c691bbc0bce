"""
Tidy Monster — keeps desktop directories free of shortcut files.

The package is built around a watch-retry-delete engine:

    itemsets  — observable sets of files (directory watch, union, filter)
    retry     — backoff policy and per-job retry scheduler
    service   — orchestrator binding an item set to a delete action

Everything else (settings, desktop glue, control API, CLI) wires the engine
to an operator.
"""

__version__ = "0.3.0"
