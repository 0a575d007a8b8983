"""craft-search: relevance-ranked search over a unified community content index."""

__version__ = "0.3.0"
