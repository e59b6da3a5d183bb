"""
Equity market data sources.

Providers fetch raw daily OHLCV bars and fundamentals per symbol; the ETL
stages in etl/ normalize, enrich and load them.
"""
