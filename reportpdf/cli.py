"""Command line entry point: render a JSON report payload to a PDF file."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from reportpdf.config import get_settings
from reportpdf.controller import render_report
from reportpdf.errors import ReportError
from reportpdf.models import ReportRequest

logger = logging.getLogger(__name__)


def render_file(payload_path: Path, output_path: Optional[Path] = None, compress: Optional[bool] = None) -> Path:
    """Render ``payload_path`` and write the PDF next to it (or to ``output_path``)."""
    payload_path = Path(payload_path).resolve()
    if not payload_path.exists():
        raise FileNotFoundError(f"Payload file not found: {payload_path}")

    with open(payload_path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if compress is not None:
        data.setdefault("meta", {})["compress"] = compress
    request = ReportRequest.model_validate(data)

    output_path = Path(output_path) if output_path else payload_path.with_suffix(".pdf")
    pdf_bytes = render_report(request, settings=get_settings())
    output_path.write_bytes(pdf_bytes)
    logger.info(f"Wrote {len(pdf_bytes)} bytes to {output_path}")
    return output_path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render a JSON report payload into a PDF")
    parser.add_argument("payload", help="Path to the report payload (.json)")
    parser.add_argument("-o", "--output", help="PDF file to write (default: payload name with .pdf)")
    parser.add_argument("--no-compress", action="store_true", help="Write uncompressed content streams")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        render_file(
            Path(args.payload),
            Path(args.output) if args.output else None,
            compress=False if args.no_compress else None,
        )
    except (OSError, ValueError, ValidationError, ReportError) as e:
        logger.error(f"Cannot render {args.payload}: {e}")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
