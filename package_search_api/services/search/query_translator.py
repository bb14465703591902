import re
from typing import Iterable, List, Tuple

from package_search_api.services.search.models.search import Query
from package_search_api.services.search.solr_client import SelectQuery, escape_term

QUERY_FIELDS = ['name^4', 'package_name^4', 'description', 'tags', 'text', 'text_ngram', 'name_split^2']
PHRASE_FIELDS = 'description'
BOOST_FUNCTIONS = 'log(trendiness)^10'
MINIMUM_MATCH = '1'

ALLOWED_SORTS = ('downloads', 'favers')
ALLOWED_ORDERS = ('asc', 'desc')

_ESCAPED_MINUS = re.compile(r'(^| )\\-(\S)')
_ESCAPED_PLUS = re.compile(r'(^| )\\\+(\S)')

def escape_query(query: str) -> str:
    """
    Escape free text for Solr while keeping the user's -/+ operators.

    Leading ``-``/``+`` (at the start or after a space) stay unescaped, and
    quotes are restored when they are balanced so phrase queries still work.
    The result is wrapped in quotes.
    """
    escaped = escape_term(query)
    escaped = _ESCAPED_MINUS.sub(r'\1-\2', escaped)
    escaped = _ESCAPED_PLUS.sub(r'\1+\2', escaped)
    if escaped.count('"') % 2 == 0:
        escaped = escaped.replace('\\"', '"')
    return f'"{escaped}"'

def type_filter(type_value: str) -> str:
    """Filter clause for a comma separated type list, empty when nothing to filter."""
    types = [escape_term(token) for token in type_value.split(',') if token]
    if not types:
        return ""
    # Several types ANDed on a single-valued field only match with one token.
    return 'type:("%s")' % '" AND "'.join(types)

def tags_filter(tags: Iterable[str]) -> str:
    escaped = [escape_term(tag) for tag in tags]
    if not escaped:
        return ""
    return 'tags:("%s")' % '" AND "'.join(escaped)

def filter_order_bys(order_bys: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    return [
        (sort, order) for sort, order in order_bys
        if sort in ALLOWED_SORTS and order in ALLOWED_ORDERS
    ]

def translate(query: Query) -> SelectQuery:
    """Build the edismax select for a search query."""
    select = SelectQuery(
        query=escape_query(query.query),
        query_parser='edismax',
        query_fields=' '.join(QUERY_FIELDS),
        phrase_fields=PHRASE_FIELDS,
        boost_functions=BOOST_FUNCTIONS,
        minimum_match=MINIMUM_MATCH,
        sorts=filter_order_bys(query.order_bys),
        start=query.page * query.per_page,
        rows=query.per_page,
    )

    type_fq = type_filter(query.type)
    if type_fq:
        select.add_filter_query('type', type_fq)

    tags_fq = tags_filter(query.tags)
    if tags_fq:
        select.add_filter_query('tags', tags_fq)

    return select
