"""
FastAPI application for the vehicle sales map dashboard.
Provides endpoints for spreadsheet upload, upload progress, cascading filters,
analytics and geocoding.
"""
import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

import requests
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, get_settings
from data_loader import SheetData, read_first_sheet
from filters import apply_cascading_filters
from geocoder import GeocodeEnricher, Geocoder, GoogleGeocoder
from ingestion import IngestionRunner
from metrics import compute_geocoding_status, compute_market_analytics
from models import (
    AnalyticsResponse,
    CascadingFilterResponse,
    FilterOptions,
    FilterSelection,
    GeocodeRequest,
    GeocodingStatusResponse,
    HealthResponse,
    MapsConfigResponse,
    MessageResponse,
    SalesRecord,
    UploadResponse,
    UploadStatusResponse,
)
from store import SalesStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ============================================================================
# Application Lifecycle
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Stop background work and release HTTP sessions on shutdown."""
    yield
    await app.state.runner.shutdown()
    clients = [app.state.geocoder]
    if app.state.proxy_geocoder is not app.state.geocoder:
        clients.append(app.state.proxy_geocoder)
    for client in clients:
        if isinstance(client, GoogleGeocoder):
            client.close()


# ============================================================================
# Dependencies
# ============================================================================

def get_store(request: Request) -> SalesStore:
    return request.app.state.store


def get_runner(request: Request) -> IngestionRunner:
    return request.app.state.runner


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


router = APIRouter(prefix="/api")


# ============================================================================
# Health Check
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Simple health check endpoint."""
    return HealthResponse(status="healthy")


# ============================================================================
# Sales Data
# ============================================================================

@router.get("/sales-data", response_model=list[SalesRecord])
async def get_sales_data(store: SalesStore = Depends(get_store)):
    return store.get_all()


@router.post("/clear-sales-data", response_model=MessageResponse)
async def clear_sales_data(store: SalesStore = Depends(get_store)):
    store.clear()
    logger.info("Sales data cleared")
    return MessageResponse(message="Sales data cleared")


# ============================================================================
# Upload
# ============================================================================

@router.post("/upload-excel", response_model=UploadResponse)
async def upload_excel(
    file: UploadFile | None = File(None),
    runner: IngestionRunner = Depends(get_runner),
):
    """
    Accept a spreadsheet and process it in the background.
    Returns immediately with an upload id to poll.
    """
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    logger.info("Upload received: filename=%s content_type=%s bytes=%d",
                file.filename, file.content_type, len(contents))
    upload_id = runner.start(contents)

    return UploadResponse(
        message="File uploaded successfully! Processing in background...",
        upload_id=upload_id,
        status="processing",
    )


@router.get("/upload-status/{upload_id}", response_model=UploadStatusResponse)
async def get_upload_status(upload_id: str, runner: IngestionRunner = Depends(get_runner)):
    report = runner.status_report(upload_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Upload not found")
    return report


# ============================================================================
# Filters & Analytics
# ============================================================================

@router.get("/filter-options", response_model=FilterOptions)
async def get_filter_options(store: SalesStore = Depends(get_store)):
    """Distinct makers, RTOs, states and districts in the current data."""
    options = store.get_filter_options()
    logger.info("Found %d makers, %d RTOs, %d states, %d districts",
                len(options.makers), len(options.rtos), len(options.states), len(options.districts))
    return options


@router.post("/cascading-filters", response_model=CascadingFilterResponse)
async def cascading_filters(selection: FilterSelection, store: SalesStore = Depends(get_store)):
    """
    Filter records by the selected makers/RTOs/states/districts and return the
    options each dimension still offers given the other selections.
    """
    return apply_cascading_filters(store.get_all(), selection)


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(store: SalesStore = Depends(get_store)):
    return compute_market_analytics(store.get_all())


# ============================================================================
# Geocoding
# ============================================================================

@router.post("/update-coordinates", response_model=MessageResponse)
async def update_coordinates(runner: IngestionRunner = Depends(get_runner)):
    if not runner.schedule_enrichment():
        return MessageResponse(message="Geocoding is not configured; coordinates were not updated")
    return MessageResponse(message="Coordinate update started in background")


@router.get("/geocoding-status", response_model=GeocodingStatusResponse)
async def get_geocoding_status(store: SalesStore = Depends(get_store)):
    return compute_geocoding_status(store.get_all())


@router.post("/geocode")
async def geocode_address(body: GeocodeRequest, request: Request):
    """Proxy a free-text address to the geocoding provider and return its raw JSON."""
    geocoder = request.app.state.proxy_geocoder
    if geocoder is None:
        raise HTTPException(status_code=500, detail="Google Maps API key not configured")
    try:
        return await asyncio.to_thread(geocoder.fetch, body.address)
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Geocode proxy failed for %r: %s", body.address, exc)
        raise HTTPException(status_code=500, detail="Geocoding failed") from exc


@router.get("/maps-config", response_model=MapsConfigResponse)
async def get_maps_config(settings: Settings = Depends(get_app_settings)):
    return MapsConfigResponse(api_key=settings.geocoding_api_key)


# ============================================================================
# FastAPI Application
# ============================================================================

def create_app(
    settings: Settings | None = None,
    geocoder: Geocoder | None = None,
    proxy_geocoder: GoogleGeocoder | None = None,
    decoder: Callable[[bytes], SheetData] = read_first_sheet,
) -> FastAPI:
    """
    Build the application and its components.

    The store, runner and geocoding clients live on app.state for the lifetime
    of the app; tests pass their own settings, geocoder and decoder.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    if geocoder is None and settings.geocoding_api_key:
        geocoder = GoogleGeocoder(settings.geocoding_api_key, timeout=settings.geocode_timeout)
    if proxy_geocoder is None and settings.proxy_api_key:
        if isinstance(geocoder, GoogleGeocoder) and geocoder.api_key == settings.proxy_api_key:
            proxy_geocoder = geocoder
        else:
            proxy_geocoder = GoogleGeocoder(settings.proxy_api_key, timeout=settings.geocode_timeout)

    store = SalesStore()
    enricher = GeocodeEnricher(
        store,
        geocoder,
        batch_size=settings.geocode_batch_size,
        batch_delay=settings.geocode_batch_delay,
        region=settings.geocode_region,
    )
    runner = IngestionRunner(store, enricher=enricher, decoder=decoder)

    app = FastAPI(
        title="Vehicle Sales Map API",
        description="Backend API for spreadsheet import, cascading filters and map-ready sales data",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.enricher = enricher
    app.state.runner = runner
    app.state.geocoder = geocoder
    app.state.proxy_geocoder = proxy_geocoder

    # Configure CORS for frontend development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    if geocoder is None:
        logger.warning("No geocoding API key configured; records will not be geocoded")
    return app


app = create_app()


# ============================================================================
# Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
