"""Reusable utilities — identifier checks, naming and hashing helpers.

Keep this package thin. Nothing here performs I/O.
"""
