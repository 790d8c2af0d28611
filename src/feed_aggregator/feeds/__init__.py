"""Feed retrieval and normalization.

Modules:
    fetcher     - conditional HTTP fetch with optional response cache
    normalizer  - format detection, shared helpers, ``parse_feed`` dispatch
    rss         - RSS and Atom via feedparser
    jsonfeed    - JSON Feed 1.x
    hfeed       - microformats2 h-feed embedded in HTML
    discovery   - ``rel=alternate`` feed link discovery
"""
