"""
Single HTTP call plumbing.
An expected HTTP error status comes back as a Failure value rather than an
exception so the paging and retry layers can apply their own policy to it.
Only network level problems raise.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Self
import logging

import requests

from .config import DirectoryConfig
from .errors import TransportError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Success():
    status: int
    body: str

    def __bool__(self) -> bool:
        return True

@dataclass(frozen=True)
class Failure():
    status: int
    body: str

    def __bool__(self) -> bool:
        return False

HttpOutcome = Success | Failure

@dataclass(frozen=True)
class ApiRequest():
    """
    Everything needed to send one call apart from the token.
    params are the query string, body is JSON encoded when present.
    """
    method: str
    url: str
    params: dict[str,Any] = field(default_factory=dict)
    body: Any = field(default=None)
    headers: dict[str,str] = field(default_factory=dict)
    compress: bool = field(default=False)

    def with_params(self, **kwargs) -> Self:
        """Copy with extra query parameters, None values are dropped"""
        params = dict(self.params)
        for k, v in kwargs.items():
            if v is None:
                params.pop(k, None)
            else:
                params[k] = v
        return replace(self, params=params)

def _query_value(value: Any) -> Any:
    # requests would send True as 'True' and the API wants 'true'
    if isinstance(value, bool):
        return "true" if value else "false"
    return value

class RequestExecutor():
    """
    Issues exactly one request per execute() through a requests.Session.
    The session can be passed in so tests or callers with their own adapters
    (proxies, mounted retries, etc) can supply one.
    """
    def __init__(self, config: DirectoryConfig|None = None,
                 session: requests.Session|None = None) -> None:
        self.config = config if config is not None else DirectoryConfig()
        self.session = session if session is not None else requests.Session()

    def __repr__(self) -> str:
        return f"{str(self.__class__)}:{self.config.base_url}"

    def headers(self, token: str, compress: bool = False) -> dict[str,str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }
        if compress:
            # google APIs want both the header and a ' (gzip)' marker in the user agent
            headers["Accept-Encoding"] = "gzip"
            headers["User-Agent"] = f"{self.config.user_agent} (gzip)"
        return headers

    def execute(self, request: ApiRequest, token: str) -> HttpOutcome:
        """
        Send the request and classify the response.
        2xx is Success, anything else Failure.  Connection errors, timeouts and the
        like raise TransportError.
        """
        headers = self.headers(token, request.compress or self.config.compress)
        headers.update(request.headers)
        kwargs = {
            "params": {k: _query_value(v) for k, v in request.params.items() if v is not None},
            "headers": headers,
            "timeout": self.config.timeout,
        }
        if request.body is not None:
            kwargs["json"] = request.body
        logger.debug("%s %s %s", request.method, request.url, kwargs["params"])
        try:
            response = self.session.request(request.method, request.url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{request.method} {request.url}: {e}") from e
        status = int(response.status_code)
        logger.debug("%s %s -> %d", request.method, request.url, status)
        if 200 <= status < 300:
            return Success(status, response.text)
        return Failure(status, response.text)
