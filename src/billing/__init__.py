"""Billing export import pipeline.

This package detects changed exports, converts CSV rows into typed
records, and writes them in retried batches to the record store.
"""
