"""
Collection retrieval across pages.
Every Directory list call works the same way: the response carries a named
array field plus a 'nextPageToken' when there is more, and the next page is
asked for by sending that back as 'pageToken'.
"""
from collections.abc import Callable
from threading import Event
import logging

from .errors import OperationCancelled, PageLimitExceeded, RequestFailed, ResponseDecodeError
from .resources import parse_body
from .transport import ApiRequest, HttpOutcome, Success

logger = logging.getLogger(__name__)

PAGE_TOKEN_FIELD = "nextPageToken"

def with_page_token(request: ApiRequest, page_token: str|None) -> ApiRequest:
    """Request for the given page, the first page when page_token is None"""
    return request.with_params(pageToken=page_token or None)

def fetch_all(send: Callable[[ApiRequest], HttpOutcome],
              template: Callable[[str|None], ApiRequest],
              collection_field: str,
              max_pages: int|None = None,
              cancel: Event|None = None) -> list:
    """
    Pull every page and return the concatenated items of collection_field.
    send: issues one request (RequestExecutor.execute with the token bound)
    template: builds the request for a page token, None for the first page
    collection_field: 'users', 'groups', 'members', 'items', etc
    max_pages: stop with PageLimitExceeded if the service is still handing out
    tokens after this many pages.  None trusts the service to stop, same as
    the API's own client libraries do.
    cancel: checked before each request

    All or nothing.  A failed page raises RequestFailed and whatever was
    collected from earlier pages is dropped.
    """
    items = []
    page_token = None
    pages = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Cancelled while paging")
        if max_pages is not None and pages >= max_pages:
            raise PageLimitExceeded(pages)
        outcome = send(template(page_token))
        if not isinstance(outcome, Success):
            raise RequestFailed(outcome.status, outcome.body)
        pages += 1
        page = parse_body(outcome.body)
        if not isinstance(page, dict):
            page = {}
        entries = page.get(collection_field) or []
        if not isinstance(entries, list):
            # a record where the array should be, extending with it would add its keys
            raise ResponseDecodeError(outcome.body)
        items.extend(entries)
        logger.debug("page %d: %d %s", pages, len(entries), collection_field)
        page_token = page.get(PAGE_TOKEN_FIELD)
        if not page_token:
            break
    return items
