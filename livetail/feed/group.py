"""
Feed group - several categories tailed from one server, one poller each.
Pollers share nothing; the group only fans out start/stop and aggregates.
"""

from typing import Dict, Iterable

from .poller import FeedPoller, FeedState, make_pollers


class FeedGroup:
    def __init__(self, base_url: str, categories: Iterable[str], **options):
        categories = list(dict.fromkeys(categories))
        if not categories:
            raise ValueError("FeedGroup needs at least one category")
        self.base_url = base_url
        self._feeds: Dict[str, FeedPoller] = {
            poller.category: poller for poller in make_pollers(base_url, categories, **options)
        }

    @property
    def categories(self):
        return list(self._feeds)

    def feed(self, category: str) -> FeedPoller:
        return self._feeds[category]

    def start(self):
        for poller in self._feeds.values():
            if not poller.is_running:
                poller.start()

    def stop(self, timeout: float = 1.0):
        for poller in self._feeds.values():
            poller.stop(timeout)

    def run_once(self) -> Dict[str, FeedState]:
        """One synchronous step on every feed."""
        return {category: poller.run_once() for category, poller in self._feeds.items()}

    def states(self) -> Dict[str, FeedState]:
        return {category: poller.state for category, poller in self._feeds.items()}

    def total_received(self) -> int:
        """Live total across categories."""
        return sum(state.total_received for state in self.states().values())

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
