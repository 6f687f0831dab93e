"""
Order provenance rules.

Accounting data never silently replaces human-entered data: a row whose
source is ``manual`` or ``excel`` can only be overwritten by a human edit
or another Excel import, never by the accounting sync.
"""

PROTECTED_FROM_SYNC = frozenset({"manual", "excel"})


def can_overwrite(existing_source: str | None, incoming_source: str) -> bool:
    """Return True if a write from ``incoming_source`` may replace a row from ``existing_source``."""
    if existing_source is None:
        return True
    if incoming_source == "accounting":
        return existing_source not in PROTECTED_FROM_SYNC
    return True


def source_after_edit(existing_source: str) -> str:
    """An accounting-sourced order becomes manual once a human edits it."""
    return "manual" if existing_source == "accounting" else existing_source
