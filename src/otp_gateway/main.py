"""FastAPI application entry point."""

import logging

from otp_gateway.app import create_app
from otp_gateway.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

app = create_app(settings)
