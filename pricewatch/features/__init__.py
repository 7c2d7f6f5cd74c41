from .products import ProductService
from .scraper import PageScraper, ScrapeGateway
from .sponsored import SponsoredSearchGateway

__all__ = ["PageScraper", "ProductService", "ScrapeGateway", "SponsoredSearchGateway"]
