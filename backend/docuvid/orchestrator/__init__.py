"""Visuals workflow orchestrator.

Provides the phased generation workflow with:
- Phase derivation from persisted records (state)
- Bounded retry around backend calls (retry)
- Per-phase batch generation dispatch (pipeline)
- Phase gates (gate) and cascading resets (reset)
"""
