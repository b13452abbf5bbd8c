import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from basketledger.core.config import settings
from basketledger.core.errors import LedgerError
from basketledger.api.routes.ledgers import router as ledgers_router
from basketledger.api.routes.feed import router as feed_router
from basketledger.api.routes.stakes import router as stakes_router
from basketledger.api.routes.audit import router as audit_router

app = FastAPI()

origins = [o.strip() for o in (settings.cors_origins or "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(LedgerError)
async def _ledger_error(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status, content={"detail": exc.to_detail()})

@app.get("/health")
@app.get("/api/health")
def health():
    return {"status": "ok"}

app.include_router(ledgers_router)
app.include_router(feed_router)
app.include_router(stakes_router)
app.include_router(audit_router)

@app.on_event("startup")
async def _configure_logging():
    logging.basicConfig(
        level=getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
