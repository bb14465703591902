import time
import logging

from package_search_api.services.search.models.search import Query, SearchResult
from package_search_api.services.search.query_translator import translate
from package_search_api.services.search.result_transformer import ResultTransformer
from package_search_api.services.search.solr_client import SolrClient

logger = logging.getLogger(__name__)

class PackageSearchEngine:
    def __init__(self, solr: SolrClient, transformer: ResultTransformer):
        self.solr = solr
        self.transformer = transformer

    def search(self, query: Query, index_name: str = "", params: str = "") -> SearchResult:
        """Run one query against Solr and reshape the page it returns."""
        start_time = time.monotonic()
        select = translate(query)
        logger.info(f"Searching for: {query.query!r} (tags={list(query.tags)}, type={query.type!r}, page={query.page})")

        paged = self.solr.select(select)

        elapsed_ms = max(1, int((time.monotonic() - start_time) * 1000))
        return self.transformer.transform(
            query,
            paged,
            index_name=index_name,
            params=params,
            processing_time_ms=elapsed_ms,
        )
