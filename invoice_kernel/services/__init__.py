"""Kernel services -- imperative shell around the pure domain."""
