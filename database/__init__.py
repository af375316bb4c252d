"""Database package."""

# Register every model in the shared metadata
from .models import AnalyticsEvent, DailyStats, Lead, Partner  # noqa: F401
