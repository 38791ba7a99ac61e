"""
Query Layer

Read-only HTTP access to session snapshots.
"""
