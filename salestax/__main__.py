"""Run the SalesTax API with uvicorn."""

import logging

import uvicorn

from salestax import settings
from salestax.api import create_app
from salestax.etl.utils import configure_logging


def main() -> None:
    """Serve the API on settings.PORT."""
    configure_logging()
    logging.getLogger("salestax").info(f"Starting server on :{settings.PORT}")
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
