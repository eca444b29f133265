"""
Feed stats helpers - per-type tallies and last-event previews.
"""

from livetail.core.codec import GenericKey, encode_cursor
from livetail.core.schema import Event
from livetail.feed.stats import counts_by_type, event_preview, event_type


def make_event(i, **fields):
    return Event(key=GenericKey.of(i), category="infrastructure", fields=fields)


def incident(i, issue_type=None, **fields):
    issue = {"type": issue_type} if issue_type else {}
    return make_event(i, type="incident", serviceIssue=issue, **fields)


class TestEventType:

    def test_service_issue_type(self):
        assert event_type(make_event(1, serviceIssue={"type": "latency"})) == "latency"

    def test_event_kind_is_not_the_type(self):
        """fields.type is the event kind; the tally uses the service issue type."""
        assert event_type(incident(1, "wireless")) == "wireless"

    def test_fallback(self):
        assert event_type(make_event(1, type="incident")) == "other"
        assert event_type(incident(2)) == "other"
        assert event_type(make_event(3, serviceIssue="nope")) == "other"


class TestCountsByType:

    def test_tally(self):
        events = [incident(1, "wireless"), incident(2, "fiber"), incident(3, "wireless"), incident(4)]
        assert counts_by_type(events) == {"wireless": 2, "fiber": 1, "other": 1}

    def test_allowed_filter(self):
        events = [incident(1, "wireless"), incident(2, "fiber")]
        assert counts_by_type(events, allowed={"fiber"}) == {"fiber": 1}

    def test_empty(self):
        assert counts_by_type([]) == {}


class TestEventPreview:

    def test_none(self):
        assert event_preview(None) is None

    def test_fields(self):
        event = incident(5, "power", city="Austin", lat=30.2, lng=-97.7, extra=1)
        assert event_preview(event) == {
            "id": encode_cursor(GenericKey.of(5)),
            "city": "Austin",
            "lat": 30.2,
            "lng": -97.7,
            "type": "power",
        }

    def test_missing_fields_are_none(self):
        preview = event_preview(make_event(6))
        assert preview["city"] is None
        assert preview["type"] == "other"
