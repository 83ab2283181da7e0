"""
Aggregation pipeline building blocks.

- freshness: decide whether cached rows must be refetched
- fan_out: run upstream calls together, all-or-nothing
- reconciler: map upstream shapes to canonical rows
- persister: write a reconciled batch in one transaction
"""
