"""State layer.

This package owns the latest snapshot of every source, the pure
recency/join computation over them, and the operator's selection.
"""
