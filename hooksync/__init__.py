"""Forward identity-provider lifecycle events to external webhooks.

The :mod:`hooksync.sync` package holds the dispatch core: configuration
snapshots, event filtering, payload extraction, and the concurrent delivery
engine.
"""
