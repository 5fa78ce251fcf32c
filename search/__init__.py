"""
Inspection search over two interchangeable backends.

Modules:
    engine: SearchEngine, mode selection and fallback
    indexed: IndexedSearchBackend, queries against the structured store
    streaming: StreamingSearchBackend, filters the remote sources directly
    filters: Shared filter semantics for both backends
    aggregates: Counts, distributions and distinct values from the store

Usage:
    from search.engine import SearchEngine
    from schemas.search import SearchFilter

    result = await engine.search(SearchFilter(city="houston"), page=2)
"""

__all__ = [
    "engine",
    "indexed",
    "streaming",
    "filters",
    "aggregates",
]
