"""
Client side of the live tail protocol: poll, buffer and age out events.
"""

# Package initialization for feed module
from .buffer import RollingBuffer
from .client import TailClient
from .group import FeedGroup
from .lifecycle import LifecycleCache, LifecycleConfig, LifecycleEntry, LifecyclePruner, PruneReport
from .poller import FeedPoller, FeedState, FeedStatus, PollerConfig
from .stats import counts_by_type, event_preview

__all__ = [
    'RollingBuffer',
    'TailClient',
    'FeedGroup',
    'LifecycleCache',
    'LifecycleConfig',
    'LifecycleEntry',
    'LifecyclePruner',
    'PruneReport',
    'FeedPoller',
    'FeedState',
    'FeedStatus',
    'PollerConfig',
    'counts_by_type',
    'event_preview'
]
