"""Storage collaborators for the billing import pipeline.

This package wraps the object store holding exports and the key-value
tables holding records and report fingerprints behind small protocols.
"""
