import re
import json
import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import ValidationError

from package_search_api.services.search.config import Settings, get_settings
from package_search_api.services.search.dependencies import get_search_engine
from package_search_api.services.search.exceptions import SearchEngineError, SearchEngineUnavailable
from package_search_api.services.search.models.search import BatchSearchRequest, Query
from package_search_api.services.search.request_parser import (
    MAX_PER_PAGE,
    parse_batch_params,
    parse_order_bys,
)
from package_search_api.services.search.search_engine import PackageSearchEngine

router = APIRouter()
logger = logging.getLogger(__name__)

_CALLBACK_PART = r'[$_a-zA-Z][$_a-zA-Z0-9]*(?:\[(?:"[^"\\]*"|\'[^\'\\]*\'|\d+)\])*'
CALLBACK_PATTERN = re.compile(rf'^{_CALLBACK_PART}(?:\.{_CALLBACK_PART})*$')

PER_PAGE_ERROR = 'The optional packages per_page parameter must be an integer between 1 and 100 (default: 15)'
MISSING_QUERY_ERROR = 'Missing search query, example: ?q=example'

# Characters hex-escaped in script bodies, like PHP's JSON_HEX_TAG/AMP/APOS
_SCRIPT_ESCAPES = {'<': '\\u003C', '>': '\\u003E', '&': '\\u0026', "'": '\\u0027'}

def jsonp_body(payload: Dict[str, Any], callback: str) -> str:
    """Script-safe JSONP body; non-ASCII (U+2028/U+2029 included) is \\u-escaped."""
    body = json.dumps(payload, separators=(',', ':'))
    for char, escaped in _SCRIPT_ESCAPES.items():
        body = body.replace(char, escaped)
    return f'/**/{callback}({body});'

def contract_response(
    payload: Dict[str, Any],
    request: Request,
    status_code: int = 200,
    max_age: Optional[int] = None,
) -> Response:
    """JSON response, wrapped as JSONP when a callback parameter is given."""
    headers = {}
    if max_age is not None:
        headers['Cache-Control'] = f'public, s-maxage={max_age}'

    callback = request.query_params.get('callback')
    if callback:
        if not CALLBACK_PATTERN.match(callback):
            raise HTTPException(status_code=400, detail="The callback name is not valid.")
        return Response(
            content=jsonp_body(payload, callback),
            status_code=status_code,
            headers=headers,
            media_type='text/javascript',
        )
    body = json.dumps(payload, ensure_ascii=False, separators=(',', ':'))
    return Response(content=body, status_code=status_code, headers=headers, media_type='application/json')

def engine_error_response(request: Request, error: SearchEngineError) -> Response:
    logger.error(f"Search request failed: {error}")
    return contract_response(
        {'status': 'error', 'message': SearchEngineUnavailable.message},
        request,
        status_code=500,
    )

def _to_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return 0

@router.get("/search.json")
def search_packages(
    request: Request,
    q: Optional[str] = None,
    type: Optional[str] = None,
    per_page: Optional[str] = None,
    page: Optional[str] = None,
    engine: PackageSearchEngine = Depends(get_search_engine),
    settings: Settings = Depends(get_settings),
):
    """Single-query search: ?q=&tags[]=&type=&per_page=&page= (page is 1-based)"""
    type_filter = (type or '').replace('%type%', '')
    tags = request.query_params.getlist('tags[]') + request.query_params.getlist('tags')

    if q is None and not type_filter and not tags:
        return contract_response({'error': MISSING_QUERY_ERROR}, request, status_code=400)

    per_page_value = _to_int(per_page, settings.DEFAULT_PER_PAGE)
    if per_page_value <= 0 or per_page_value > MAX_PER_PAGE:
        return contract_response({'status': 'error', 'message': PER_PAGE_ERROR}, request, status_code=400)

    query = Query(
        query=q or '',
        tags=tuple(tags),
        type=type_filter,
        per_page=per_page_value,
        page=max(1, _to_int(page, 1)) - 1,
        order_bys=tuple(parse_order_bys(request.query_params.multi_items())),
    )

    try:
        result = engine.search(query, index_name=settings.INDEX_NAME)
    except SearchEngineError as e:
        return engine_error_response(request, e)

    return contract_response(result.to_response(), request, max_age=settings.CACHE_MAX_AGE)

@router.post("/search/queries")
@router.post("/search/1/indexes/{index}/queries")
async def batch_search(
    request: Request,
    engine: PackageSearchEngine = Depends(get_search_engine),
    settings: Settings = Depends(get_settings),
):
    """Multi-query search in the hosted-search batching format."""
    raw_body = await request.body()
    try:
        batch = BatchSearchRequest.model_validate(json.loads(raw_body or b'{}'))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring malformed batch search body: {e}")
        batch = BatchSearchRequest()

    order_bys = parse_order_bys(request.query_params.multi_items())
    results = []
    for sub_request in batch.requests:
        query = parse_batch_params(sub_request.params, order_bys)
        try:
            result = await asyncio.to_thread(
                engine.search, query, sub_request.indexName, sub_request.params
            )
        except SearchEngineError as e:
            return engine_error_response(request, e)
        results.append(result.to_response())

    return contract_response({'results': results}, request, max_age=settings.CACHE_MAX_AGE)
