"""
mongo-topology integration tests

These tests run real MongoDB containers through Docker and drive a replica
set through setup, node restarts and teardown. They run in sequence and
share one topology for the whole module.

Port Range: 27100-27110 (to avoid conflicts with local MongoDB)
Skipped when no Docker daemon is reachable.
"""
