from functools import lru_cache
from package_search_api.services.search.config import get_settings
from package_search_api.services.search.result_transformer import ResultTransformer
from package_search_api.services.search.search_engine import PackageSearchEngine
from package_search_api.services.search.solr_client import SolrClient

@lru_cache()
def get_search_engine() -> PackageSearchEngine:
    """
    Provides the shared PackageSearchEngine, wired from the application settings.
    """
    settings = get_settings()
    solr = SolrClient(settings.SOLR_URL, settings.SOLR_CORE, timeout=settings.SOLR_TIMEOUT)
    transformer = ResultTransformer(settings.BASE_URL, default_per_page=settings.DEFAULT_PER_PAGE)
    return PackageSearchEngine(solr, transformer)
