"""
Read-only helpers for feed consumers: per-type tallies and last-event cards.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Set

from ..core.schema import Event

PREVIEW_FIELDS = ("city", "lat", "lng")


def event_type(event: Event) -> str:
    """Service issue type of an event (fields.serviceIssue.type), else 'other'."""
    issue = event.fields.get("serviceIssue")
    if isinstance(issue, Mapping) and issue.get("type"):
        return str(issue["type"])
    return "other"


def counts_by_type(events: Iterable[Event], allowed: Optional[Set[str]] = None) -> Dict[str, int]:
    """Tally events per type, skipping types outside `allowed` when it is given."""
    out: Dict[str, int] = {}
    for event in events:
        t = event_type(event)
        if allowed is not None and t not in allowed:
            continue
        out[t] = out.get(t, 0) + 1
    return out


def event_preview(event: Optional[Event]) -> Optional[Dict[str, Any]]:
    """Compact card for the 'last event' display."""
    if event is None:
        return None
    preview = {"id": event.id}
    for name in PREVIEW_FIELDS:
        preview[name] = event.fields.get(name)
    preview["type"] = event_type(event)
    return preview
