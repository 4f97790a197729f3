"""
Where bearer tokens come from.
A call is made either with a token the caller already has, or with a named
profile: a stored credential file that google-auth can refresh.  The profile
store is the only thing here that touches the network (token refresh) or disk.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
import datetime
import json
import logging

import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .errors import AuthError, ConfigurationError, ProfileNotFoundError

logger = logging.getLogger(__name__)

SCOPES = {
    "user": "https://www.googleapis.com/auth/admin.directory.user",
    "user-ro": "https://www.googleapis.com/auth/admin.directory.user.readonly",
    "user-alias": "https://www.googleapis.com/auth/admin.directory.user.alias",
    "user-alias-ro": "https://www.googleapis.com/auth/admin.directory.user.alias.readonly",
    "group": "https://www.googleapis.com/auth/admin.directory.group",
    "group-ro": "https://www.googleapis.com/auth/admin.directory.group.readonly",
    "group-member": "https://www.googleapis.com/auth/admin.directory.group.member",
    "group-member-ro": "https://www.googleapis.com/auth/admin.directory.group.member.readonly",
    "orgunit": "https://www.googleapis.com/auth/admin.directory.orgunit",
    "orgunit-ro": "https://www.googleapis.com/auth/admin.directory.orgunit.readonly",
    "rolemanagement": "https://www.googleapis.com/auth/admin.directory.rolemanagement",
    "rolemanagement-ro": "https://www.googleapis.com/auth/admin.directory.rolemanagement.readonly",
    "customer": "https://www.googleapis.com/auth/admin.directory.customer",
    "customer-ro": "https://www.googleapis.com/auth/admin.directory.customer.readonly",
}
SCOPE_URL_PREFIX = "https://www.googleapis.com/"
DEFAULT_LOCATION = Path.home() / ".gwsadmin"

def get_scope(scope: str) -> str:
    """
    Get a scope based on simplified label.
    A raw URL will also be accepted.  Unknown labels give an empty string.
    """
    s = str(scope)
    sc = SCOPES.get(s, "")
    if not sc and s.startswith(SCOPE_URL_PREFIX):
        sc = s
    return sc

def get_scopes(scopes: str|Iterable[str]) -> list[str]:
    """Resolve one or many labels/URLs, raising on anything unrecognised"""
    labels = [scopes] if isinstance(scopes, str) else list(scopes)
    resolved = []
    for label in labels:
        s = get_scope(label)
        if not s:
            raise ConfigurationError(f"Invalid scope value: {label}")
        if s not in resolved:
            resolved.append(s)
    return resolved

@dataclass(frozen=True)
class BearerToken():
    """A token the caller already holds, used as-is"""
    token: str

    def __repr__(self) -> str:
        # keep tokens out of logs and tracebacks
        return f"{self.__class__.__name__}(<redacted>)"

@dataclass(frozen=True)
class Profile():
    """
    A named set of stored credentials.
    location: directory holding the profile files, None for the store default
    persist: write the refreshed token back to the profile file
    """
    name: str
    location: Path|str|None = field(default=None)
    persist: bool = field(default=False)

Credential = BearerToken | Profile

@dataclass(frozen=True)
class AccessToken():
    access_token: str
    expiry: datetime.datetime|None = field(default=None)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(<redacted>, expiry={self.expiry})"

class ProfileStore():
    """
    File backed profiles, one json file per profile name.
    A profile file is either what google.oauth2.credentials.Credentials.to_json()
    writes (an authorized user, created through authorize()), or a service account
    key with an optional 'subject' for domain-wide delegation and 'scopes'.
    Directory calls generally need a super admin, so a service account profile
    without a subject won't get far.
    """
    __DEFAULT_AUTH_PROMPT_MSG = "Authorize gwsadmin by visiting: {url}"
    __DEFAULT_AUTH_FLOW_SUCCESS_MSG = "gwsadmin is authorized, this window can be closed."

    def __init__(self, location: Path|str|None = None) -> None:
        self.location = Path(location) if location is not None else DEFAULT_LOCATION
        self.auth_prompt_msg = self.__DEFAULT_AUTH_PROMPT_MSG
        self.auth_flow_success_msg = self.__DEFAULT_AUTH_FLOW_SUCCESS_MSG

    def __repr__(self) -> str:
        return f"{str(self.__class__)}:{str(self.location)}"

    def path(self, name: str, location: Path|str|None = None) -> Path:
        n = str(name)
        if not n or n in (".", "..") or "/" in n or "\\" in n:
            raise ConfigurationError(f"Invalid profile name: {name!r}")
        base = Path(location) if location is not None else self.location
        return base / f"{n}.json"

    def exists(self, name: str, location: Path|str|None = None) -> bool:
        return self.path(name, location).is_file()

    def names(self, location: Path|str|None = None) -> list[str]:
        """Names of the stored profiles"""
        base = Path(location) if location is not None else self.location
        if not base.is_dir():
            return []
        return sorted(p.stem for p in base.glob("*.json") if p.is_file())

    def delete(self, name: str, location: Path|str|None = None) -> bool:
        p = self.path(name, location)
        if p.is_file():
            p.unlink()
            return True
        return False

    def save(self, name: str, creds: Credentials, location: Path|str|None = None) -> Path:
        """Store authorized user credentials under name"""
        p = self.path(name, location)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(creds.to_json(), encoding='utf-8')
        return p

    def load(self, name: str, location: Path|str|None = None) -> Credentials|service_account.Credentials:
        """
        Build credentials from the profile file.  Raises ProfileNotFoundError if
        there is no such file.
        """
        p = self.path(name, location)
        if not p.is_file():
            raise ProfileNotFoundError(str(name), str(p.parent))
        with open(p, 'r', encoding='utf-8') as f:
            info = json.load(f)
        scopes = info.get('scopes') or None
        if info.get('type') == 'service_account':
            return service_account.Credentials.from_service_account_info(
                info, scopes=scopes, subject=info.get('subject'))
        return Credentials.from_authorized_user_info(info, scopes)

    def get_token(self, name: str, location: Path|str|None = None,
                  persist: bool = False) -> AccessToken:
        """
        Current access token for the profile, refreshing if it has expired.
        If persist is set the refreshed user credentials are written back so the
        next call can skip the refresh.  Service account keys are never rewritten.
        Refresh problems are raised as google.auth exceptions.
        """
        creds = self.load(name, location)
        if not creds.valid:
            try:
                creds.refresh(Request())
            except google.auth.exceptions.RefreshError as e:
                logger.warning("failed to refresh stored creds for profile %s: %s", name, e)
                raise
            if persist and isinstance(creds, Credentials):
                self.save(name, creds, location)
        return AccessToken(creds.token, creds.expiry)

    def authorize(self, name: str, client_secrets: Path|str,
                  scopes: str|Iterable[str],
                  server: str = 'localhost', port: int = 0,
                  location: Path|str|None = None) -> Credentials:
        """
        Run the installed app OAuth flow and store the result as a profile.
        This pops the consent screen in a browser, so is meant for a one-off
        setup rather than something called per request.
        """
        secrets = Path(client_secrets)
        if not secrets.is_file():
            raise ConfigurationError(f"Client secrets file not found: {secrets}")
        flow = InstalledAppFlow.from_client_secrets_file(str(secrets), get_scopes(scopes))
        creds = flow.run_local_server(host=server, port=port,
                                      authorization_prompt_message=self.auth_prompt_msg,
                                      success_message=self.auth_flow_success_msg)
        self.save(name, creds, location)
        return creds

def resolve_token(credential: Credential, store: ProfileStore|None = None) -> str:
    """
    Bearer token for one logical operation.
    An explicit token is returned untouched.  A profile goes through the store,
    and any failure there (missing profile, failed refresh, unreadable file)
    comes out as AuthError.  Nothing is cached here.
    """
    if isinstance(credential, BearerToken):
        if not credential.token:
            raise AuthError("empty bearer token")
        return credential.token
    if not isinstance(credential, Profile):
        raise ConfigurationError(f"Invalid credential: {type(credential).__name__}")
    s = store if store is not None else ProfileStore()
    try:
        token = s.get_token(credential.name, credential.location, credential.persist)
    except ProfileNotFoundError as e:
        raise AuthError(str(e)) from e
    except google.auth.exceptions.GoogleAuthError as e:
        raise AuthError(f"profile '{credential.name}' refresh failed: {e}") from e
    except ConfigurationError:
        raise
    except (OSError, ValueError) as e:
        raise AuthError(f"profile '{credential.name}' unreadable: {e}") from e
    if not token.access_token:
        raise AuthError(f"profile '{credential.name}' produced no access token")
    return token.access_token
