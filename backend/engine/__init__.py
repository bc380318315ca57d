"""
Query engines over the feature corpus.

An engine answers the two query shapes the API exposes: a paginated listing
with free-text search, and a fixed-window conjunctive field filter. The
in-memory engine scans the corpus linearly per request; the DuckDB engine
evaluates the same predicates in SQL and must return identical results.
"""
