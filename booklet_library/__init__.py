"""
Booklet Library core
booklet_library/

Offline-first storage and synchronization for a booklet/question library:
1. Local Store        — versioned per-collection record store (SQLAlchemy)
2. Numbering Engine   — stable per-topic question numbers
3. Import Parser      — resilient JSON import into the local store
4. Deduplicator       — collapse booklets sharing a natural key
5. Remote Sync Engine — paged pull / split push against a PostgREST backend
6. Sync Orchestrator  — pull → dedupe → push sweeps, on demand and on a timer
"""

__version__ = "1.0.0"
