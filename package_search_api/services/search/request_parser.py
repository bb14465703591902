import re
import json
import logging
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs

from package_search_api.services.search.models.search import Query

logger = logging.getLogger(__name__)

SUPPORTED_FACETS = ('type', 'tags')
BATCH_DEFAULT_PER_PAGE = 100
MAX_PER_PAGE = 100

_ORDER_BY_KEY = re.compile(r'^orderBys\[(\d+)\]\[(sort|order)\]$')

def _to_int(value: Optional[str], default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default

def parse_facet_filters(raw: Optional[str]) -> Dict[str, List[str]]:
    """
    Flatten a facetFilters value into the facets this service supports.

    ``raw`` is the JSON text sent by hosted-search clients, e.g.
    ``[["type:library"], ["tags:cli", "tags:console"]]``. Every
    ``facet:value`` entry is collected; unknown facet names are dropped.
    """
    facet_filters: Dict[str, List[str]] = {name: [] for name in SUPPORTED_FACETS}
    if not raw:
        return facet_filters

    try:
        groups = json.loads(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed facetFilters: {raw!r}")
        return facet_filters

    if not isinstance(groups, list):
        return facet_filters

    for group in groups:
        entries = group if isinstance(group, list) else [group]
        for entry in entries:
            if not isinstance(entry, str) or ':' not in entry:
                continue
            key, _, value = entry.partition(':')
            if key in facet_filters:
                facet_filters[key].append(value)
    return facet_filters

def parse_batch_params(params: str, order_bys: Iterable[Tuple[str, str]] = ()) -> Query:
    """
    Build a Query from the URL-encoded params of one batch sub-request.

    The page size is capped at MAX_PER_PAGE so the next link stays valid
    for the single-query endpoint.
    """
    parsed = {key: values[-1] for key, values in parse_qs(params, keep_blank_values=True).items()}

    per_page = _to_int(parsed.get('hitsPerPage'), 0) or _to_int(parsed.get('maxValuesPerFacet'), BATCH_DEFAULT_PER_PAGE)
    facet_filters = parse_facet_filters(parsed.get('facetFilters'))

    return Query(
        query=parsed.get('query', ''),
        tags=tuple(facet_filters['tags']),
        type=','.join(facet_filters['type']),
        per_page=min(MAX_PER_PAGE, max(1, per_page)),
        page=max(0, _to_int(parsed.get('page'), 0)),
        order_bys=tuple(order_bys),
    )

def parse_order_bys(items: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Collect ``orderBys[i][sort]`` / ``orderBys[i][order]`` pairs in index order."""
    collected: Dict[int, Dict[str, str]] = {}
    for key, value in items:
        match = _ORDER_BY_KEY.match(key)
        if match:
            collected.setdefault(int(match.group(1)), {})[match.group(2)] = value
    return [
        (entry['sort'], entry['order'])
        for _, entry in sorted(collected.items())
        if 'sort' in entry and 'order' in entry
    ]
