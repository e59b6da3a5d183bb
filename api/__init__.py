"""
Read-only REST API over the equity ETL store.

Serves the dashboard views (latest prices, performance summary, execution
summary) plus per-run quality rows and indicator series.
"""

__version__ = "1.0.0"
