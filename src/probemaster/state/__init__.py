"""State/store layer.

This package is the single source of truth for how facts parsed from the
poll endpoint, the REST endpoints and the byte stream are merged into one
area / probe / location graph.
"""
