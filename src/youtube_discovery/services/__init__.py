"""Query, cache, quota, evidence and scoring services."""
