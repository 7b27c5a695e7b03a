from .summary_cache import SummaryCache

__all__ = ["SummaryCache"]
