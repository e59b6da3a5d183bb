"""
FastAPI application for the equity ETL store.

Read-only pull surface for dashboards; OpenAPI documentation at /docs.

Usage:
    uvicorn api.main:app --reload
    python -m api.main
"""

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .data_access import ViewReader
from .models import (
    ExecutionRecord,
    ExecutionSummary,
    HealthResponse,
    IndicatorSeriesResponse,
    IndicatorValue,
    LatestPrice,
    PerformanceSummary,
    PriceBar,
    PriceHistoryResponse,
    QualityRecord,
    QualityReportResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_reader: Optional[ViewReader] = None


def get_reader() -> ViewReader:
    """Lazily open the shared read-only connection."""
    global _reader
    if _reader is None:
        try:
            _reader = ViewReader()
        except FileNotFoundError as e:
            logger.error(f"Failed to connect to database: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        logger.info(f"Connected to database: {_reader.db_path}")
    return _reader


# ----------------------------------------------------------------
# Health
# ----------------------------------------------------------------

@app.get("/", response_model=HealthResponse, tags=["Health"])
def root(data: ViewReader = Depends(get_reader)):
    """API health check with row counts."""
    return {
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "status": "healthy",
        "database_path": data.db_path,
        "database_stats": data.get_database_stats()
    }


# ----------------------------------------------------------------
# Dashboard views
# ----------------------------------------------------------------

@app.get("/prices/latest", response_model=List[LatestPrice], tags=["Views"])
def latest_prices(data: ViewReader = Depends(get_reader)):
    """Most recent close for every active stock."""
    return data.get_latest_prices()


@app.get("/performance", response_model=List[PerformanceSummary], tags=["Views"])
def performance_summary(data: ViewReader = Depends(get_reader)):
    return data.get_performance_summary()


@app.get("/executions/summary", response_model=List[ExecutionSummary], tags=["Views"])
def execution_summary(data: ViewReader = Depends(get_reader)):
    """Run counts by outcome per job."""
    return data.get_execution_summary()


# ----------------------------------------------------------------
# Series
# ----------------------------------------------------------------

@app.get("/stocks/{symbol}/prices", response_model=PriceHistoryResponse, tags=["Stocks"])
def price_history(
    symbol: str,
    start_date: Optional[str] = Query(None, description="First date (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Last date (YYYY-MM-DD)"),
    limit: int = Query(365, ge=1, le=settings.MAX_LIMIT),
    data: ViewReader = Depends(get_reader)
):
    if not data.get_stock(symbol):
        raise HTTPException(status_code=404, detail=f"Symbol {symbol.upper()} not found")
    rows = data.get_prices(symbol, start_date, end_date, limit)
    return PriceHistoryResponse(
        symbol=symbol.upper(),
        count=len(rows),
        prices=[PriceBar(**r) for r in rows]
    )


@app.get("/stocks/{symbol}/indicators/{indicator_type}", response_model=IndicatorSeriesResponse, tags=["Stocks"])
def indicator_series(
    symbol: str,
    indicator_type: str,
    params: Optional[str] = Query(None, description="Parameter key, e.g. 20 or 12,26,9"),
    start_date: Optional[str] = None,
    limit: int = Query(365, ge=1, le=settings.MAX_LIMIT),
    data: ViewReader = Depends(get_reader)
):
    """
    Indicator values for one symbol.

    - **indicator_type**: SMA, EMA, RSI, MACD or MACD_SIGNAL
    - **params**: restrict to one parameter set
    """
    if not data.get_stock(symbol):
        raise HTTPException(status_code=404, detail=f"Symbol {symbol.upper()} not found")
    rows = data.get_indicators(symbol, indicator_type, params, start_date, limit)
    return IndicatorSeriesResponse(
        symbol=symbol.upper(),
        indicator_type=indicator_type.upper(),
        count=len(rows),
        values=[IndicatorValue(**r) for r in rows]
    )


# ----------------------------------------------------------------
# Execution audit
# ----------------------------------------------------------------

@app.get("/executions", response_model=List[ExecutionRecord], tags=["Executions"])
def list_executions(
    job_name: Optional[str] = None,
    limit: int = Query(50, ge=1, le=1000),
    data: ViewReader = Depends(get_reader)
):
    return data.get_executions(job_name, limit)


@app.get("/executions/{execution_id}", response_model=ExecutionRecord, tags=["Executions"])
def get_execution(execution_id: int, data: ViewReader = Depends(get_reader)):
    row = data.get_execution(execution_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
    return row


@app.get("/executions/{execution_id}/quality", response_model=QualityReportResponse, tags=["Executions"])
def execution_quality(
    execution_id: int,
    symbol: Optional[str] = None,
    data: ViewReader = Depends(get_reader)
):
    """Quality checks recorded for a run, optionally for one symbol."""
    if not data.get_execution(execution_id):
        raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
    rows = data.get_quality_results(execution_id, symbol)
    return QualityReportResponse(
        execution_id=execution_id,
        count=len(rows),
        checks=[QualityRecord(**r) for r in rows]
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)
