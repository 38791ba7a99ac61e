"""
Query API
"""

from dataflow.query.api.main import create_app

__all__ = ["create_app"]
