"""FastAPI application for LedgerSync."""

from functools import lru_cache

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile

from ledgersync.config import configure_logging, settings
from ledgersync.exceptions import ParseError
from ledgersync.models import INSTITUTIONS, Institution, InstitutionInfo, UploadResult
from ledgersync.services.exchange_rate import RateCheck
from ledgersync.services.upload import ImportOrchestrator, build_orchestrator, resolve_institution
from ledgersync.store.sqlite import SqliteStore

app = FastAPI(
    title="LedgerSync",
    description="Imports bank statements into a per-owner transaction ledger",
    version="0.1.0",
)


@lru_cache
def get_orchestrator() -> ImportOrchestrator:
    """Build the import services once per process."""
    return build_orchestrator(settings)


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    configure_logging(settings.log_level)
    settings.ensure_directories()
    settings.log_config()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "store_backend": settings.store_backend}


@app.get("/institutions", response_model=list[InstitutionInfo])
async def list_institutions():
    """Supported banks and the ledger tab suffix each one writes to."""
    return list(INSTITUTIONS.values())


@app.post("/destinations")
async def create_destination(
    owner: str = Form(...),
    institution: Institution = Form(...),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Provision a ledger destination (SQLite backend only)."""
    if not isinstance(orchestrator.store, SqliteStore):
        raise HTTPException(status_code=400, detail="Destinations are managed in the spreadsheet itself")

    context = orchestrator.create_context(institution, owner)
    orchestrator.store.provision(context.destination)
    return {"destination": context.destination}


@app.post("/upload", response_model=UploadResult, response_model_by_alias=True)
async def upload_file(
    file: UploadFile = File(...),
    owner: str = Form(...),
    institution: Institution | None = Form(None),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Import a bank statement into the owner's ledger."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Empty file")

    try:
        chosen = resolve_institution(institution, file.filename, contents)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    context = orchestrator.create_context(chosen, owner)
    return await orchestrator.import_file(context, contents)


@app.get("/exchange-rate/check", response_model=RateCheck)
async def check_exchange_rate(orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    """Verify that the exchange rate API key works."""
    if orchestrator.converter is None:
        return RateCheck(success=False, error="Currency conversion is not configured")
    return await orchestrator.converter.check_provider()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ledgersync.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )
