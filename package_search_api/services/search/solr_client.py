import re
import json
import logging
import requests
from pydantic import ValidationError
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from package_search_api.services.search.exceptions import SearchEngineError, SearchEngineUnavailable
from package_search_api.services.search.models.document import SearchDocument
from package_search_api.services.search.models.search import PagedResult, SolrHit

logger = logging.getLogger(__name__)

# Lucene query syntax characters, space included
_SPECIAL_CHARS = re.compile(r'( |\+|-|&&|\|\||!|\(|\)|\{|}|\[|]|\^|"|~|\*|\?|:|/|\\)')

def escape_term(term: str) -> str:
    """Backslash-escape every Lucene special character in a term."""
    return _SPECIAL_CHARS.sub(r'\\\1', term)

@dataclass
class SelectQuery:
    """Native edismax select request."""
    query: str = "*:*"
    query_parser: str = "edismax"
    query_fields: str = ""
    phrase_fields: str = ""
    boost_functions: str = ""
    minimum_match: str = ""
    filter_queries: Dict[str, str] = field(default_factory=dict)
    sorts: List[Tuple[str, str]] = field(default_factory=list)
    start: int = 0
    rows: int = 10

    def add_filter_query(self, key: str, query: str) -> None:
        self.filter_queries[key] = query

    def to_params(self) -> List[Tuple[str, Union[str, int]]]:
        params = [('q', self.query), ('defType', self.query_parser)]
        for name, value in (('qf', self.query_fields), ('pf', self.phrase_fields),
                            ('bf', self.boost_functions), ('mm', self.minimum_match)):
            if value:
                params.append((name, value))
        for fq in self.filter_queries.values():
            params.append(('fq', fq))
        if self.sorts:
            params.append(('sort', ','.join(f"{sort} {order}" for sort, order in self.sorts)))
        params.extend([('start', self.start), ('rows', self.rows), ('wt', 'json')])
        return params

class UpdateRequest:
    """Ordered list of Solr update commands sent as one request."""

    def __init__(self):
        self.commands: List[Tuple[str, Any]] = []

    def add_document(self, document: SearchDocument) -> None:
        self.commands.append(('add', {'doc': document.to_solr()}))

    def add_delete_by_id(self, doc_id: Union[int, str]) -> None:
        self.commands.append(('delete', {'id': str(doc_id)}))

    def add_delete_query(self, query: str) -> None:
        self.commands.append(('delete', {'query': query}))

    def add_commit(self) -> None:
        self.commands.append(('commit', {}))

    @property
    def documents(self) -> List[Dict[str, Any]]:
        return [payload['doc'] for verb, payload in self.commands if verb == 'add']

    def to_json(self) -> str:
        # Solr's JSON update syntax repeats keys for multiple commands,
        # which a dict cannot express.
        parts = [
            f'{json.dumps(verb)}:{json.dumps(payload, separators=(",", ":"))}'
            for verb, payload in self.commands
        ]
        return '{' + ','.join(parts) + '}'

class SolrClient:
    def __init__(self, base_url: str, core: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        """Initialize the client for one Solr core."""
        self.core_url = f"{base_url.rstrip('/')}/{core}"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.core_url}/{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.error(f"Solr unreachable at {url}: {e}")
            raise SearchEngineUnavailable(str(e)) from e
        except requests.HTTPError as e:
            logger.error(f"Solr returned {e.response.status_code} for {url}: {e.response.text[:500]}")
            raise SearchEngineError(f"Solr request failed with status {e.response.status_code}") from e
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Invalid Solr response from {url}: {e}")
            raise SearchEngineError(str(e)) from e

    def select(self, select: SelectQuery) -> PagedResult:
        """Run a select and return the requested page as typed hits."""
        data = self._request('GET', 'select', params=select.to_params())
        body = data.get('response', {})
        try:
            hits = [SolrHit.from_solr(doc) for doc in body.get('docs', [])]
        except ValidationError as e:
            logger.error(f"Unexpected document shape in Solr response: {e}")
            raise SearchEngineError("Solr returned a malformed document") from e
        return PagedResult(
            hits=hits,
            num_found=int(body.get('numFound', 0)),
            per_page=select.rows,
            current_page=select.start // select.rows + 1,
        )

    def update(self, update: UpdateRequest) -> None:
        """Send all staged commands of an update request."""
        if not update.commands:
            return
        self._request(
            'POST', 'update',
            data=update.to_json().encode('utf-8'),
            headers={'Content-Type': 'application/json'},
        )

    def delete_all(self) -> None:
        update = UpdateRequest()
        update.add_delete_query('*:*')
        update.add_commit()
        self.update(update)

    def ping(self) -> bool:
        try:
            data = self._request('GET', 'admin/ping')
            return data.get('status') == 'OK'
        except SearchEngineError:
            return False
