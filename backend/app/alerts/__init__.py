"""
alerts — Live disaster alert ingestion, caching and delivery.

Sub-modules:
    models         — Data structures shared across the system
    gazetteer      — City → state lookup tables
    classifier     — Raw candidate → canonical AlertRecord
    cache          — Immutable snapshot cache with filtered queries
    scheduler      — Periodic and manual refresh with mutual exclusion
    city_search    — On-demand per-city search, independent of the cache
    notifications  — Recipient resolution and push fan-out
    channels/      — Push delivery backends
"""
