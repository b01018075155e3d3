"""Routers package."""

from . import (
    health,
    cron,
    relevancy,
    lounges,
)
