#!/usr/bin/env python3
"""
OpenAPI specification generator for the SalesTax pipeline.

This script writes the OpenAPI specification of the upload API.
"""

import json
from pathlib import Path

import yaml
from fastapi.openapi.utils import get_openapi

from salestax import __version__
from salestax.api import create_app


def generate_openapi_spec(output_format: str = "yaml") -> Path:
    """Generate the OpenAPI specification.

    Args:
        output_format: "yaml" or "json"

    Returns:
        Path of the written specification
    """
    app = create_app()

    openapi_schema = get_openapi(
        title=app.title,
        version=__version__,
        description="Sales tax enrichment API",
        routes=app.routes,
    )

    openapi_dir = Path(__file__).parent.parent / "openapi"
    openapi_dir.mkdir(exist_ok=True)

    if output_format == "json":
        openapi_path = openapi_dir / "salestax.json"
        with open(openapi_path, "w") as f:
            json.dump(openapi_schema, f, indent=2)
    else:
        openapi_path = openapi_dir / "salestax.yaml"
        with open(openapi_path, "w") as f:
            yaml.dump(openapi_schema, f, sort_keys=False)

    print(f"OpenAPI specification written to {openapi_path}")
    return openapi_path


if __name__ == "__main__":
    import sys

    generate_openapi_spec(sys.argv[1] if len(sys.argv) > 1 else "yaml")
