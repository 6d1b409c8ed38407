"""Benchmark engine for pmbench.

Enumerates the case matrix of package-manager preconditions, prepares
workspace and cache state for each case, times repeated installs, and
writes per-shard partial results that can be merged later.
"""
