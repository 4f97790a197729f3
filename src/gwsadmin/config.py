"""
Client configuration.  One immutable object handed to the Directory at
construction instead of module level constants.
"""
from dataclasses import dataclass, field, fields, asdict, replace
from typing import Self
from urllib.parse import quote

from .errors import ConfigurationError

DEFAULT_BASE_URL = "https://admin.googleapis.com/admin/directory/v1"
DEFAULT_USER_AGENT = "gwsadmin/0.1.0"
# the source API only tolerates a handful of retries on inserts so keep it small
MIN_ATTEMPTS = 1
MAX_ATTEMPTS = 5

def validate_max_attempts(value: int) -> int:
    """
    Retry budget has to be a small positive int, anything else is a caller bug.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Invalid max_attempts value: {value!r}")
    if not MIN_ATTEMPTS <= value <= MAX_ATTEMPTS:
        raise ConfigurationError(f"max_attempts must be between {MIN_ATTEMPTS} and {MAX_ATTEMPTS}: {value}")
    return value

@dataclass(frozen=True)
class DirectoryConfig():
    """
    base_url: Admin SDK Directory API root
    user_agent: sent on every request, gets ' (gzip)' appended when compressing
    timeout: seconds for connect/read on each HTTP call
    page_size: maxResults for list calls, None to let the service pick
    max_attempts: default retry budget for creation calls (1-5)
    compress: ask for gzip encoded responses by default
    max_pages: optional ceiling on pages per list call, None for no limit
    """
    base_url: str = field(default=DEFAULT_BASE_URL)
    user_agent: str = field(default=DEFAULT_USER_AGENT)
    timeout: float = field(default=60.0)
    page_size: int|None = field(default=500)
    max_attempts: int = field(default=3)
    compress: bool = field(default=False)
    max_pages: int|None = field(default=None)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ConfigurationError("base_url must not be empty")
        if self.timeout <= 0:
            raise ConfigurationError(f"Invalid timeout value: {self.timeout}")
        if self.page_size is not None and self.page_size <= 0:
            raise ConfigurationError(f"Invalid page_size value: {self.page_size}")
        if self.max_pages is not None and self.max_pages <= 0:
            raise ConfigurationError(f"Invalid max_pages value: {self.max_pages}")
        validate_max_attempts(self.max_attempts)
        # frozen so have to go around __setattr__ to drop a trailing slash
        object.__setattr__(self, 'base_url', self.base_url.rstrip('/'))

    @classmethod
    def from_dict(cls, config: dict) -> Self:
        """
        Build from a dict.
        Convenience for state pulled out of a json, toml, ini, etc, file.
        """
        names = {f.name for f in fields(cls)}
        unknown = [k for k in config if k not in names]
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**config)

    def to_dict(self) -> dict:
        return asdict(self)

    def with_overrides(self, **kwargs) -> Self:
        return replace(self, **kwargs)

    def url(self, *parts: str) -> str:
        """
        Join path segments onto base_url.  Each segment is quoted so keys with
        '@' or spaces are fine, but '/' is kept so org unit paths work as-is.
        """
        path = "/".join(quote(str(p).strip('/'), safe="/@:") for p in parts if str(p).strip('/'))
        return f"{self.base_url}/{path}" if path else self.base_url
