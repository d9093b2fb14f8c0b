"""
Ingestion — catalog sync, delta conversion, chunking, and embedding.

This package turns the remote article catalog into indexed chunks:
the catalog client fetches items, the diff engine picks what changed,
and the convergence loop runs fetch → convert → chunk → embed → upsert
for every pending item until nothing is left to retry.
"""
