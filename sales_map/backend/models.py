"""
Pydantic models for sales records, upload jobs and API request/response schemas.
"""
from typing import Literal, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


TRACKED_YEARS = (2022, 2023, 2024, 2025)

UploadState = Literal["processing", "completed", "error"]


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================================
# Sales Records
# ============================================================================

class SalesRecordCreate(CamelModel):
    """A validated sales row, ready to be stored."""
    state: str = Field(min_length=1)
    city: str = Field(min_length=1)
    maker: str = ""
    rto: str = ""
    district: str = ""
    # (0, 0) means "not geocoded yet"
    latitude: float = 0.0
    longitude: float = 0.0
    sales2022: int = Field(default=0, ge=0)
    sales2023: int = Field(default=0, ge=0)
    sales2024: int = Field(default=0, ge=0)
    sales2025: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    monthly: dict[str, int] = Field(
        default_factory=dict,
        description="Per-month unit counts keyed JAN..DEC for the row's year",
    )


class SalesRecord(SalesRecordCreate):
    """A stored sales record with its store-assigned id."""
    id: int

    @property
    def is_geocoded(self) -> bool:
        return self.latitude != 0 or self.longitude != 0

    @property
    def geocode_key(self) -> str:
        return f"{self.city}, {self.state}"


# ============================================================================
# Upload Jobs
# ============================================================================

class UploadJob(CamelModel):
    """Progress of one spreadsheet ingestion."""
    job_id: str = Field(alias="uploadId")
    status: UploadState = "processing"
    total_rows: int = 0
    processed_rows: int = 0
    inserted_records: int = 0
    error: Optional[str] = None
    start_time: int = Field(description="Epoch milliseconds when the upload began")


class UploadStatusResponse(UploadJob):
    """Response for GET /api/upload-status/{upload_id}."""
    processing_time: int = 0
    progress_percent: int = 0


class UploadResponse(CamelModel):
    """Response for POST /api/upload-excel."""
    message: str
    upload_id: str
    status: UploadState = "processing"


# ============================================================================
# Filtering
# ============================================================================

class FilterOptions(CamelModel):
    makers: list[str] = Field(default_factory=list)
    rtos: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    districts: list[str] = Field(default_factory=list)


class FilterSelection(CamelModel):
    """Request body for POST /api/cascading-filters. Empty list = no constraint."""
    makers: list[str] = Field(default_factory=list)
    rtos: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    districts: list[str] = Field(default_factory=list)


class CascadingFilterResponse(CamelModel):
    filtered_data: list[SalesRecord]
    available_options: FilterOptions


# ============================================================================
# Analytics & Geocoding
# ============================================================================

class AnalyticsResponse(CamelModel):
    """Response for GET /api/analytics."""
    total_markets: int = 0
    total_sales2024: int = 0
    avg_growth_rate: float = 0.0
    market_penetration: float = 0.0
    active_markets: int = 0
    growth_markets: int = 0
    emerging_markets: int = 0


class GeocodingStatusResponse(CamelModel):
    """Response for GET /api/geocoding-status."""
    total_records: int = 0
    geocoded_records: int = 0
    pending_geocode: int = 0
    percent_complete: int = 0


class GeocodeRequest(CamelModel):
    address: str = Field(min_length=1)


class MapsConfigResponse(CamelModel):
    api_key: Optional[str] = None


class MessageResponse(CamelModel):
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/health endpoint."""
    status: str = "healthy"
