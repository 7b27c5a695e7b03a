from .analytics_tools import AnalyticsTools
from .cta_resolver import CtaResolution, resolve_cta
from .site_summary import SiteSummaryService

__all__ = [
    "AnalyticsTools",
    "CtaResolution",
    "resolve_cta",
    "SiteSummaryService",
]
