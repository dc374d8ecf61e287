"""
Remote synchronization
booklet_library/sync/

1. remote.py       — httpx client for the PostgREST backend (proxy + bulk paths)
2. mapping.py      — local record <-> remote row shapes
3. state.py        — fingerprints and dedupe tombstones
4. engine.py       — per-collection pull / push, last-write-wins
5. outbox.py       — per-record push queue with a single consumer
6. orchestrator.py — pull → dedupe → push sweeps on demand and on a timer
"""
