"""Map rendering: the surface interface and the reconciler that drives it."""
