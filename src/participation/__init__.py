"""Classroom participation tracker.

Roster reconciliation, fair cold-call picking and a participation ledger
with period-bucketed point summaries.
"""

__version__ = "0.1.0"
