"""
FastAPI routes over the stock store and the batch ingestor.
- read side: list/filter, by symbol, distinct countries/indexes, health
- POST /api/stocks/update runs one batch (what the external cron calls)
"""
import os
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from db_store import StockFilters
from logger import get_logger, log_error
from scheduler import should_update_now

log = get_logger("api")


class UpdateRequest(BaseModel):
    batchNumber: int = Field(..., ge=1)
    totalBatches: int = Field(..., ge=1)
    forceUpdate: bool = False


def create_app(stock_store, ingestor) -> FastAPI:
    app = FastAPI(title="Stock Ingestion API", version="0.1.0")

    @app.get("/api/stocks")
    def list_stocks(
        country: Optional[str] = None,
        indexes: Optional[List[str]] = Query(default=None),
        search: Optional[str] = None,
        sortBy: str = Query(default="symbol", pattern="^(symbol|name|marketCap|price|changes|lastUpdated)$"),
        sortOrder: str = Query(default="asc", pattern="^(asc|desc)$"),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=50, ge=1, le=100),
    ):
        filters = StockFilters(
            country=country,
            indexes=indexes or [],
            search=search,
            sort_by=sortBy,
            sort_order=sortOrder,
            page=page,
            limit=limit,
        )
        rows, total = stock_store.get_stocks(filters)
        return {
            "success": True,
            "data": [r.to_dict() for r in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    @app.get("/api/stocks/health")
    def health():
        return stock_store.get_health()

    @app.get("/api/stocks/countries")
    def list_countries():
        return {"success": True, "data": stock_store.get_countries()}

    @app.get("/api/stocks/indexes")
    def list_indexes():
        return {"success": True, "data": stock_store.get_indexes()}

    @app.get("/api/stocks/schedule/check")
    def schedule_check(forceUpdate: bool = False):
        should, reason = should_update_now(forceUpdate)
        return {"success": True, "data": {"shouldUpdate": should, "reason": reason}}

    @app.get("/api/stocks/{symbol}")
    def stock_by_symbol(symbol: str):
        record = stock_store.get_stock(symbol)
        if record is None:
            raise HTTPException(status_code=404, detail="Stock not found")
        return {"success": True, "data": record.to_dict()}

    @app.post("/api/stocks/update")
    def update_stocks(req: UpdateRequest):
        try:
            result = ingestor.update_stocks(req.batchNumber, req.totalBatches, req.forceUpdate)
        except Exception as e:
            log_error(log, "api_update_failed", e, batch=req.batchNumber)
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "message": str(e),
                    "processed": 0,
                    "totalBatches": req.totalBatches,
                    "errors": [str(e)],
                },
            )
        return result.to_dict()

    return app


def build_app() -> FastAPI:
    from batch_ingest import build_ingestor
    from config import load_settings
    from db_store import PostgresStockStore

    settings = load_settings()
    return create_app(PostgresStockStore(settings.database_url), build_ingestor(settings))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(build_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
