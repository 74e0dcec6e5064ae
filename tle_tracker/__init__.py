"""
TLE Tracker - orbital data pipeline

Fetches and caches Two-Line Element sets from CelesTrak, propagates them with
SGP4 at a fixed tick rate and derives the secondary geometry consumed by a
globe renderer.

Modules:
    - tle_parser: TLE text / GP JSON parsing and fixed-column element extraction
    - cache_store, cache_policy: durable TLE cache and staleness rules
    - celestrak_client: conditional HTTP fetch with JSON/text fallback
    - repository: coalescing, backoff and cache fallback state machine
    - orbit_engine, coordinates: SGP4 propagation and frame conversion
    - tracking: 1 Hz propagation loop publishing snapshots
    - orbit_path, orbit_signature: orbit polylines and plane deduplication
    - footprint, program_catalog: coverage estimates per program
    - solar: sub-solar direction for scene lighting
"""

__version__ = "1.0.0"
