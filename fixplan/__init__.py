"""fixplan: crawl a site and turn its SEO signals into a prioritized fix plan."""

from .config import Settings
from .fetcher import Fetcher, FetchError, FetchResult

__version__ = "0.1.0"

__all__ = ["Settings", "Fetcher", "FetchError", "FetchResult", "__version__"]
