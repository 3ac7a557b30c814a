"""
Artifact storage backends.

A backend answers bounds, circle and viewport queries over geotagged artifacts.
`InMemoryBackend` keeps everything in-process behind an STRtree; `DuckDBBackend`
persists to DuckDB and issues equivalent SQL. Pick one with `engine.factory.create_backend`.
"""
