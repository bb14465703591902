import math
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PER_PAGE = 15

class Query(BaseModel):
    """A single search request, page is 0-based."""
    model_config = ConfigDict(frozen=True)

    query: str = ""
    tags: Tuple[str, ...] = ()
    type: str = ""
    per_page: int = Field(default=DEFAULT_PER_PAGE, gt=0)
    page: int = Field(default=0, ge=0)
    order_bys: Tuple[Tuple[str, str], ...] = ()

class SolrHit(BaseModel):
    """Fixed-shape view of one stored Solr document."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str
    name: str
    package_name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    repository: Optional[str] = None
    language: Optional[str] = None
    tags: List[str] = []
    abandoned: int = 0
    replacement_package: Optional[str] = Field(default=None, alias='replacementPackage')
    downloads: Optional[int] = None
    favers: Optional[int] = None
    popularity: Optional[int] = None
    trendiness: Optional[float] = None

    @classmethod
    def from_solr(cls, doc: Dict[str, Any]) -> 'SolrHit':
        fields = dict(doc)
        fields['id'] = str(fields.get('id', ''))
        # single-valued fields may come back as one-element lists depending on the schema
        for key, value in list(fields.items()):
            if key != 'tags' and isinstance(value, list):
                fields[key] = value[0] if value else None
        if isinstance(fields.get('tags'), str):
            fields['tags'] = [fields['tags']]
        return cls.model_validate(fields)

    @property
    def is_package(self) -> bool:
        return self.id.isdigit()

class PagedResult(BaseModel):
    """One page of Solr hits plus the total match count."""
    hits: List[SolrHit] = []
    num_found: int = 0
    per_page: int = DEFAULT_PER_PAGE
    current_page: int = 1

    @property
    def nb_pages(self) -> int:
        return max(1, math.ceil(self.num_found / self.per_page))

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.nb_pages

    @property
    def next_page(self) -> int:
        return self.current_page + 1

class SearchResult(BaseModel):
    """Response envelope of the hosted-search contract."""
    hits: List[Dict[str, Any]] = []
    facets: Dict[str, Dict[str, int]] = {}
    page: int = 0
    index: str = ""
    query: str = ""
    params: str = ""
    hitsPerPage: int = DEFAULT_PER_PAGE
    exhaustiveFacetsCount: bool = True
    exhaustiveNbHits: bool = True
    processingTimeMS: int = 1
    nbPages: int = 1
    nbHits: int = 0
    next: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude={'next'})
        if self.next is not None:
            payload['next'] = self.next
        return payload

class IndexQuery(BaseModel):
    indexName: str = ""
    params: str = ""

class BatchSearchRequest(BaseModel):
    requests: List[IndexQuery] = []
