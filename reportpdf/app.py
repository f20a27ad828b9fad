"""
FastAPI application for the report rendering service.

Provides REST API endpoints for report rendering with error handling,
logging, and health checks.

License: MIT
"""

import base64
import logging
import time
from typing import Any, Dict
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from reportpdf import __version__
from reportpdf.config import get_settings
from reportpdf.controller import render_report
from reportpdf.errors import InvalidElementSpec, SerializationError, UnknownStyle
from reportpdf.models import ReportRequest

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Report PDF API",
    version=__version__,
    description="Renders declarative report element trees into paginated PDF documents",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information."""
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} "
        f"completed in {duration:.3f}s with status {response.status_code}"
    )

    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report payload validation failures as 400 like every other bad input."""
    logger.error(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": f"Validation error: {exc.errors()}"})


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Status dictionary indicating service health
    """
    return {"status": "ok"}


def _render(report: ReportRequest) -> bytes:
    """Render a payload, mapping library errors onto HTTP errors."""
    try:
        return render_report(report, settings=get_settings())

    except (InvalidElementSpec, UnknownStyle, ValidationError) as e:
        logger.error(f"Invalid report: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Validation error: {str(e)}")

    except SerializationError as e:
        logger.error(f"Serialization error: {str(e)}")
        raise HTTPException(status_code=422, detail=f"Serialization error: {str(e)}")

    except Exception as e:
        logger.error(f"Rendering error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Rendering error: {str(e)}")


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the RFC 5987 UTF-8 name."""
    fallback = "".join(ch if " " <= ch < "\x7f" and ch not in '"\\' else "_" for ch in filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@app.post("/render")
async def render_pdf(report: ReportRequest) -> Response:
    """
    Render a report to PDF.

    Args:
        report: Report payload

    Returns:
        PDF file as binary response

    Raises:
        HTTPException: On validation or rendering errors
    """
    start_time = time.time()
    pdf_bytes = _render(report)
    render_time = time.time() - start_time

    logger.info(f"Rendered report with {len(report.body)} body elements in {render_time:.3f}s")

    headers = {
        "Content-Disposition": _content_disposition(f"{report.meta.title or 'report'}.pdf"),
        "X-Render-Time": f"{render_time:.3f}",
    }
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


@app.post("/render-base64")
async def render_pdf_base64(report: ReportRequest) -> Dict[str, Any]:
    """
    Render a report to PDF and return it as base64-encoded JSON.

    Useful for API clients that cannot handle binary responses.
    """
    start_time = time.time()
    pdf_bytes = _render(report)
    render_time = time.time() - start_time

    logger.info(f"Rendered report (base64) with {len(report.body)} body elements in {render_time:.3f}s")

    return {
        "success": True,
        "pdf_base64": base64.b64encode(pdf_bytes).decode("utf-8"),
        "filename": f"{report.meta.title or 'report'}.pdf",
        "size_bytes": len(pdf_bytes),
        "render_time_seconds": round(render_time, 3),
    }


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
