"""Core participation logic.

Modules:
- reconciler: Roster synchronization against persisted students
- picker: Fair shuffled-bag student picker
- ledger: Event recording, correction and period summaries
- roster_reader: Roster file decoding and parsing
- exporter: Gradebook summary export
"""

__all__ = [
    "reconciler",
    "picker",
    "ledger",
    "roster_reader",
    "exporter",
]
