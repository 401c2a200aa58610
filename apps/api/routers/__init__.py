"""Routers package."""

from . import (
    health,
    auth,
    upload,
    assets,
    transcripts,
    brand,
)
