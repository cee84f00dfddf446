"""
Infrastructure layer for A11yAudit.

Queue and report store contracts with in-memory and Redis backends.
"""
