from collections import Counter
from typing import Any, Dict, List
from urllib.parse import quote, urlencode

from package_search_api.services.search.models.search import (
    DEFAULT_PER_PAGE,
    PagedResult,
    Query,
    SearchResult,
    SolrHit,
)

def format_count(value: int) -> str:
    """Thousands separated with a space, e.g. 1234567 -> '1 234 567'."""
    return f"{int(value):,}".replace(',', ' ')

class ResultTransformer:
    """Reshapes a page of Solr hits into the hosted-search response."""

    def __init__(self, base_url: str, default_per_page: int = DEFAULT_PER_PAGE):
        self.base_url = base_url.rstrip('/')
        self.default_per_page = default_per_page

    def package_url(self, name: str) -> str:
        return f"{self.base_url}/packages/{quote(name)}"

    def providers_url(self, name: str) -> str:
        return f"{self.base_url}/providers/{quote(name)}"

    def search_url(self, params: List[tuple]) -> str:
        return f"{self.base_url}/search.json?{urlencode(params)}"

    def transform(self, query: Query, paged: PagedResult, index_name: str = "",
                  params: str = "", processing_time_ms: int = 1) -> SearchResult:
        result = SearchResult(
            hits=[self._transform_hit(hit) for hit in paged.hits],
            facets=self.count_facets(paged.hits),
            page=query.page,
            index=index_name,
            query=query.query,
            params=params,
            hitsPerPage=paged.per_page,
            processingTimeMS=processing_time_ms,
            nbPages=paged.nb_pages,
            nbHits=paged.num_found,
        )
        if paged.has_next_page:
            result.next = self._next_url(query, paged.next_page)
        return result

    @staticmethod
    def count_facets(hits: List[SolrHit]) -> Dict[str, Dict[str, int]]:
        """
        Tally tags and types over the hits of the current page.

        This only reflects the returned page, not the whole result set.
        """
        tags = Counter()
        types = Counter()
        for hit in hits:
            tags.update(hit.tags)
            if hit.type is not None:
                types[hit.type] += 1
        return {'tags': dict(tags), 'type': dict(types)}

    def _transform_hit(self, hit: SolrHit) -> Dict[str, Any]:
        if hit.is_package:
            doc_id = int(hit.id)
            url = self.package_url(hit.name)
        else:
            doc_id = hit.id
            url = self.providers_url(hit.name)

        row: Dict[str, Any] = {
            'id': doc_id,
            'name': hit.name,
            'description': hit.description or '',
            'url': url,
            'repository': hit.repository,
            'objectID': hit.name,
            'package_name': hit.package_name or hit.name,
            'type': hit.type,
            'tags': hit.tags,
            'language': hit.language or 'php',
            'abandoned': hit.abandoned,
            'popularity': hit.popularity,
            'replacementPackage': hit.replacement_package,
        }

        if hit.abandoned:
            row['abandoned'] = hit.replacement_package if hit.replacement_package else True

        if hit.is_package:
            downloads = hit.downloads or 0
            favers = hit.favers or 0
            row['downloads'] = downloads
            row['favers'] = favers
            row['trendiness'] = hit.trendiness
            row['meta'] = {
                'downloads': downloads,
                'downloads_formatted': format_count(downloads),
                'favers': favers,
                'favers_formatted': format_count(favers),
            }
            # Solr is not asked for highlighting, so this only mirrors the raw values
            row['_highlightResult'] = {
                'description': {
                    'fullyHighlighted': False,
                    'value': hit.description or '',
                    'matchLevel': 'full',
                },
                'name': {
                    'fullyHighlighted': False,
                    'value': hit.name or '',
                    'matchLevel': 'full',
                },
            }
        else:
            row['virtual'] = True

        return row

    def _next_url(self, query: Query, next_page: int) -> str:
        params = [('q', query.query), ('page', next_page)]
        for tag in query.tags:
            params.append(('tags[]', tag))
        if query.type:
            params.append(('type', query.type))
        if query.per_page != self.default_per_page:
            params.append(('per_page', query.per_page))
        for position, (sort, order) in enumerate(query.order_bys):
            params.append((f'orderBys[{position}][sort]', sort))
            params.append((f'orderBys[{position}][order]', order))
        return self.search_url(params)
