"""
WireKVS SDK Test Suite.

This package contains:
- unit/: Unit tests (hub, transport, errors, config)
- integration/: Database and client handles against fake collaborators
"""
