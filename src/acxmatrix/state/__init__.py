"""State layer.

This package is the single source of truth for how ingested events are
folded into the stored aggregates (indexes, per-location summaries and the
per-account location list), and how those aggregates are read back.
"""
