"""
Shared kernel: error types used across layers.
"""
