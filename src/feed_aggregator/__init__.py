"""Feed aggregation engine.

Subscribes channels to external feeds (RSS, Atom, JSON Feed, h-feed), polls
them on an adaptive schedule, normalizes entries into a canonical item model
and serves cursor-paginated channel timelines.
"""

__version__ = "0.1.0"
