"""
API service for the SalesTax pipeline.

This module implements the FastAPI front door: it accepts a CSV upload,
runs the tax pipeline and streams the resulting report back as a download.
"""

import datetime
import logging
from pathlib import PurePath
from typing import Optional

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel

from salestax import __version__, settings
from salestax.etl.rate_lookup import RateLookupClient
from salestax.etl.reports import ReportShape
from salestax.etl.run_pipeline import ProcessingMode, run_pipeline
from salestax.etl.utils import TaxPipelineError

# Configure logging
logger = logging.getLogger("salestax.api")


class HealthCheck(BaseModel):
    """Health check response model."""
    status: str = "ok"


def output_filename(upload_name: Optional[str], extension: str) -> str:
    """Build the download name for a processed upload."""
    stem = PurePath(upload_name or "").stem or "charges"
    return f"{stem}_taxes.{extension}"


def create_app(lookup_client: Optional[RateLookupClient] = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        lookup_client: Rate lookup client shared by all requests.
            Defaults to one built from settings.
    """
    app = FastAPI(
        title="SalesTax API",
        version=__version__,
        description="""
        # Sales Tax Pipeline API

        Upload a CSV of client charges and addresses and receive it back with
        the sales tax owed to each jurisdiction.

        ## Input columns

        * `client, charge, street address, city, State, zip code`
          (rates for the current quarter), or
        * `client, date, charge, street address, city, State, zip code`
          (rates for the quarter of each row's MM/DD/YYYY date)

        ## Report shapes

        * `fixed` - city, county and state tax columns
        * `dynamic` - one column per jurisdiction
        * `dual` - ZIP with `due_by_charge.csv` and `due_by_jurisdiction.csv`
        """,
        openapi_tags=[
            {
                "name": "Health",
                "description": "Health check endpoints",
            },
            {
                "name": "Taxes",
                "description": "Tax calculation endpoints",
            },
        ],
    )
    app.state.lookup_client = lookup_client or RateLookupClient()

    # Apply CORS middleware; preflight requests are answered here
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = datetime.datetime.now()
        response = await call_next(request)
        process_time = (datetime.datetime.now() - start_time).total_seconds() * 1000
        logger.info(
            f"Request: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Process Time: {process_time:.2f}ms - "
            f"Client: {request.client.host if request.client else 'Unknown'}"
        )
        return response

    @app.exception_handler(TaxPipelineError)
    async def pipeline_error_handler(request: Request, exc: TaxPipelineError):
        logger.error(f"Processing failed: {exc}")
        return PlainTextResponse(f"Processing failed: {exc}", status_code=500)

    @app.get("/healthz", response_model=HealthCheck, tags=["Health"])
    async def healthz():
        """Health check endpoint."""
        logger.debug("Health check requested")
        return {"status": "ok"}

    @app.post("/process-csv", tags=["Taxes"])
    async def process_csv(
        request: Request,
        csvfile: Optional[UploadFile] = File(None, alias=settings.UPLOAD_FIELD_NAME),
        shape: ReportShape = Query(ReportShape.FIXED, description="Report shape (fixed, dynamic, dual)"),
        mode: ProcessingMode = Query(ProcessingMode.PARALLEL, description="Processing mode (parallel, sequential)"),
    ):
        """
        Compute sales tax for an uploaded CSV.

        The file is sent as multipart form data. Rows are enriched with the
        rates of the jurisdictions taxing each address, and the report is
        returned as an attachment.

        In parallel mode a row whose lookup fails is reported in an `error`
        column; in sequential mode the whole upload fails.
        """
        if csvfile is None:
            return PlainTextResponse(
                f"Failed to get file: missing form field '{settings.UPLOAD_FIELD_NAME}'",
                status_code=400,
            )

        content = await csvfile.read()
        result = await run_pipeline(
            content,
            shape=shape,
            mode=mode,
            lookup_client=request.app.state.lookup_client,
            metadata={"filename": csvfile.filename},
        )

        filename = output_filename(csvfile.filename, result.extension)
        return Response(
            content=result.payload,
            media_type=result.media_type,
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return app
