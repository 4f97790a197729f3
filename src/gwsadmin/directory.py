"""
Admin SDK Directory API operations.
Every call resolves a token once, builds the request, and then either pages
through a list, retries an insert through rate limiting, or does a single
get/patch/delete.  Everything handed back is plain normalized dicts/lists.
See https://developers.google.com/admin-sdk/directory/reference/rest
"""
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from functools import partial
from threading import Event
from typing import Any
import time

import requests

from .access import Credential, ProfileStore, resolve_token
from .config import DirectoryConfig, validate_max_attempts
from .errors import ConfigurationError
from .paging import fetch_all, with_page_token
from .resources import DirectoryResourceBase, normalize, parse_body
from .retry import execute_with_retry, raise_for_outcome
from .transport import ApiRequest, HttpOutcome, RequestExecutor

MY_CUSTOMER = "my_customer"

# maxResults ceilings per collection, the service rejects anything larger
_MAX_RESULTS = {
    "users": 500,
    "groups": 200,
    "members": 200,
    "roles": 100,
    "roleassignments": 200,
}

_PROJECTIONS = ["basic", "custom", "full"]
_USER_ORDER_BY = ["email", "familyName", "givenName"]
_SORT_ORDERS = ["ASCENDING", "DESCENDING"]
_VIEW_TYPES = ["admin_view", "domain_public"]
_MEMBER_ROLES = ["OWNER", "MANAGER", "MEMBER"]
_ORG_UNIT_TYPES = ["all", "children", "allIncludingParent"]
_SCOPE_TYPES = ["CUSTOMER", "ORG_UNIT"]

def _choice(name: str, value: str|None, valid: list[str], fold: Callable[[str], str] = str) -> str|None:
    if value is None:
        return None
    v = fold(str(value))
    if v not in valid:
        raise ConfigurationError(f"Invalid {name} value: {value}")
    return v

def _key(value: str|Mapping|DirectoryResourceBase, *names: str) -> str:
    """
    Resource key from either a plain string or something previously returned
    by the API (or one of the dataclasses) carrying one of the named fields.
    """
    if isinstance(value, DirectoryResourceBase):
        value = value.to_base()
    if isinstance(value, Mapping):
        for n in names:
            if value.get(n):
                return str(value[n])
        raise ConfigurationError(f"Resource has none of the key fields: {', '.join(names)}")
    k = str(value)
    if not k:
        raise ConfigurationError("Resource key must not be empty")
    return k

def _org_unit(path: str) -> str:
    """
    Org unit path as a URL segment.  The root '/' strips to nothing, which would
    turn the call into one against the whole orgunits collection.
    """
    p = _key(path).strip('/')
    if not p:
        raise ConfigurationError(f"Invalid org unit path: {path!r}, the root org unit can't be addressed by path")
    return p

def _body(properties: Mapping|DirectoryResourceBase) -> dict:
    if isinstance(properties, DirectoryResourceBase):
        return properties.trim()
    if not isinstance(properties, Mapping):
        raise ConfigurationError(f"Invalid request body: {type(properties).__name__}")
    return normalize(properties)

@dataclass
class Member(DirectoryResourceBase):
    """
    https://developers.google.com/admin-sdk/directory/reference/rest/v1/members
    Only the writable fields.  role is one of OWNER, MANAGER, MEMBER.
    """
    email: str|None = field(default=None)
    role: str|None = field(default="MEMBER")
    type: str|None = field(default=None)
    delivery_settings: str|None = field(default=None)

    def __post_init__(self) -> None:
        self.fixup()

    def __bool__(self) -> bool:
        return bool(self.email)

    def fixup(self) -> None:
        self.role = _choice("member role", self.role, _MEMBER_ROLES, str.upper)

@dataclass
class RoleAssignment(DirectoryResourceBase):
    """
    https://developers.google.com/admin-sdk/directory/reference/rest/v1/roleAssignments
    An ORG_UNIT scoped assignment needs the orgUnitId too.
    """
    roleId: str|None = field(default=None)
    assignedTo: str|None = field(default=None)
    scopeType: str = field(default="CUSTOMER")
    orgUnitId: str|None = field(default=None)

    def __post_init__(self) -> None:
        self.fixup()

    def __bool__(self) -> bool:
        return bool(self.roleId) and bool(self.assignedTo)

    def fixup(self) -> None:
        self.scopeType = _choice("scopeType", self.scopeType, _SCOPE_TYPES, str.upper)
        if self.scopeType == "ORG_UNIT" and not self.orgUnitId:
            raise ConfigurationError("ORG_UNIT scoped role assignments need an orgUnitId")

class Directory():
    """
    Directory API client bound to one credential.
    credential: BearerToken or Profile, resolved fresh for every operation
    config: DirectoryConfig, defaults if not given
    store: ProfileStore used for Profile credentials
    session: requests.Session to send through
    sleep: used between rate limit retries
    cancel: optional Event checked before each page and each retry wait
    """
    def __init__(self, credential: Credential,
                 config: DirectoryConfig|None = None,
                 store: ProfileStore|None = None,
                 session: requests.Session|None = None,
                 sleep: Callable[[float], None] = time.sleep,
                 cancel: Event|None = None) -> None:
        self.credential = credential
        self.config = config if config is not None else DirectoryConfig()
        self.store = store
        self.executor = RequestExecutor(self.config, session)
        self.sleep = sleep
        self.cancel = cancel

    def __repr__(self) -> str:
        return f"{str(self.__class__)}:{self.config.base_url}"

    def _sender(self) -> Callable[[ApiRequest], HttpOutcome]:
        token = resolve_token(self.credential, self.store)
        return partial(self.executor.execute, token=token)

    def _request(self, method: str, parts: Iterable[str], body: Any = None, **params) -> ApiRequest:
        return ApiRequest(method, self.config.url(*parts),
                          params={k: v for k, v in params.items() if v is not None},
                          body=body, compress=self.config.compress)

    def _list(self, parts: Iterable[str], collection_field: str,
              max_results: int|None = None, **params) -> list:
        page_size = self.config.page_size
        if max_results is not None and page_size is not None:
            params['maxResults'] = min(page_size, max_results)
        send = self._sender()
        first = self._request("GET", parts, **params)
        return fetch_all(send, partial(with_page_token, first), collection_field,
                         max_pages=self.config.max_pages, cancel=self.cancel)

    def _call(self, method: str, parts: Iterable[str], body: Any = None, **params) -> Any:
        send = self._sender()
        outcome = send(self._request(method, parts, body, **params))
        raise_for_outcome(outcome)
        return parse_body(outcome.body)

    def _insert(self, parts: Iterable[str], body: Any, max_attempts: int|None = None, **params) -> Any:
        attempts = validate_max_attempts(max_attempts if max_attempts is not None else self.config.max_attempts)
        send = self._sender()
        outcome = execute_with_retry(send, self._request("POST", parts, body, **params), attempts,
                                     sleep=self.sleep, cancel=self.cancel)
        # a surviving 503 means every retry was used, initial call plus attempts
        raise_for_outcome(outcome, attempts + 1)
        return parse_body(outcome.body)

    # users

    def list_users(self, domain: str|None = None, customer: str|None = None,
                   query: str|None = None, order_by: str|None = None,
                   sort_order: str|None = None, projection: str = "basic",
                   show_deleted: bool = False, view_type: str|None = None) -> list[dict]:
        """
        https://developers.google.com/admin-sdk/directory/reference/rest/v1/users/list
        Either domain or customer is needed, customer defaults to the admin's own
        account if neither is given.
        """
        if domain is None and customer is None:
            customer = MY_CUSTOMER
        return self._list(["users"], "users", _MAX_RESULTS["users"],
                          domain=domain, customer=customer, query=query,
                          orderBy=_choice("orderBy", order_by, _USER_ORDER_BY),
                          sortOrder=_choice("sortOrder", sort_order, _SORT_ORDERS, str.upper),
                          projection=_choice("projection", projection, _PROJECTIONS, str.lower),
                          showDeleted=True if show_deleted else None,
                          viewType=_choice("viewType", view_type, _VIEW_TYPES, str.lower))

    def get_user(self, user_key: str|Mapping, projection: str = "basic") -> dict:
        return self._call("GET", ["users", _key(user_key, "id", "primaryEmail")],
                          projection=_choice("projection", projection, _PROJECTIONS, str.lower))

    def create_user(self, properties: Mapping|DirectoryResourceBase, max_attempts: int|None = None) -> dict:
        """
        https://developers.google.com/admin-sdk/directory/reference/rest/v1/users/insert
        properties is the user resource as the API wants it (primaryEmail, name,
        password at minimum).  Retried on 503.
        """
        body = _body(properties)
        if not body.get("primaryEmail"):
            raise ConfigurationError("create_user needs a primaryEmail")
        return self._insert(["users"], body, max_attempts)

    def update_user(self, user_key: str|Mapping, properties: Mapping|DirectoryResourceBase) -> dict:
        """Patch semantics, only the supplied fields change"""
        return self._call("PATCH", ["users", _key(user_key, "id", "primaryEmail")], _body(properties))

    def delete_user(self, user_key: str|Mapping) -> None:
        self._call("DELETE", ["users", _key(user_key, "id", "primaryEmail")])

    def undelete_user(self, user_key: str|Mapping, org_unit_path: str = "/") -> None:
        """user_key has to be the unique id here, deleted users have no email lookup"""
        self._call("POST", ["users", _key(user_key, "id"), "undelete"], {"orgUnitPath": org_unit_path})

    def make_admin(self, user_key: str|Mapping, status: bool = True) -> None:
        if not isinstance(status, bool):
            raise ConfigurationError(f"Invalid makeAdmin status value: {status}")
        self._call("POST", ["users", _key(user_key, "id", "primaryEmail"), "makeAdmin"], {"status": status})

    def list_user_aliases(self, user_key: str|Mapping) -> list[dict]:
        return self._list(["users", _key(user_key, "id", "primaryEmail"), "aliases"], "aliases")

    def add_user_alias(self, user_key: str|Mapping, alias: str, max_attempts: int|None = None) -> dict:
        return self._insert(["users", _key(user_key, "id", "primaryEmail"), "aliases"],
                            {"alias": _key(alias)}, max_attempts)

    def remove_user_alias(self, user_key: str|Mapping, alias: str) -> None:
        self._call("DELETE", ["users", _key(user_key, "id", "primaryEmail"), "aliases", _key(alias)])

    # groups

    def list_groups(self, domain: str|None = None, customer: str|None = None,
                    user_key: str|Mapping|None = None, query: str|None = None,
                    order_by: str|None = None, sort_order: str|None = None) -> list[dict]:
        """
        https://developers.google.com/admin-sdk/directory/reference/rest/v1/groups/list
        With user_key this is the groups that user belongs to, otherwise all groups
        for the domain/customer.
        """
        uk = _key(user_key, "id", "primaryEmail") if user_key is not None else None
        if uk is None and domain is None and customer is None:
            customer = MY_CUSTOMER
        return self._list(["groups"], "groups", _MAX_RESULTS["groups"],
                          domain=domain, customer=customer, userKey=uk, query=query,
                          orderBy=_choice("orderBy", order_by, ["email"]),
                          sortOrder=_choice("sortOrder", sort_order, _SORT_ORDERS, str.upper))

    def get_group(self, group_key: str|Mapping) -> dict:
        return self._call("GET", ["groups", _key(group_key, "id", "email")])

    def create_group(self, properties: Mapping|DirectoryResourceBase, max_attempts: int|None = None) -> dict:
        body = _body(properties)
        if not body.get("email"):
            raise ConfigurationError("create_group needs an email")
        return self._insert(["groups"], body, max_attempts)

    def update_group(self, group_key: str|Mapping, properties: Mapping|DirectoryResourceBase) -> dict:
        return self._call("PATCH", ["groups", _key(group_key, "id", "email")], _body(properties))

    def delete_group(self, group_key: str|Mapping) -> None:
        self._call("DELETE", ["groups", _key(group_key, "id", "email")])

    def list_group_aliases(self, group_key: str|Mapping) -> list[dict]:
        return self._list(["groups", _key(group_key, "id", "email"), "aliases"], "aliases")

    def add_group_alias(self, group_key: str|Mapping, alias: str, max_attempts: int|None = None) -> dict:
        return self._insert(["groups", _key(group_key, "id", "email"), "aliases"],
                            {"alias": _key(alias)}, max_attempts)

    def remove_group_alias(self, group_key: str|Mapping, alias: str) -> None:
        self._call("DELETE", ["groups", _key(group_key, "id", "email"), "aliases", _key(alias)])

    # members

    def list_members(self, group_key: str|Mapping, roles: str|Iterable[str]|None = None,
                     include_derived: bool = False) -> list[dict]:
        """
        https://developers.google.com/admin-sdk/directory/reference/rest/v1/members/list
        roles filters on OWNER/MANAGER/MEMBER, any combination.
        """
        role_param = None
        if roles is not None:
            rl = [roles] if isinstance(roles, str) else list(roles)
            role_param = ",".join(_choice("member role", r, _MEMBER_ROLES, str.upper) for r in rl) or None
        return self._list(["groups", _key(group_key, "id", "email"), "members"], "members",
                          _MAX_RESULTS["members"], roles=role_param,
                          includeDerivedMembership=True if include_derived else None)

    def get_member(self, group_key: str|Mapping, member_key: str|Mapping) -> dict:
        return self._call("GET", ["groups", _key(group_key, "id", "email"),
                                  "members", _key(member_key, "id", "email")])

    def add_member(self, group_key: str|Mapping, member: str|Member|Mapping,
                   role: str = "MEMBER", max_attempts: int|None = None) -> dict:
        """A plain email gets wrapped in a Member with the given role"""
        m = Member(email=member, role=role) if isinstance(member, str) else member
        return self._insert(["groups", _key(group_key, "id", "email"), "members"], _body(m), max_attempts)

    def update_member(self, group_key: str|Mapping, member_key: str|Mapping,
                      properties: Mapping|DirectoryResourceBase) -> dict:
        return self._call("PATCH", ["groups", _key(group_key, "id", "email"),
                                    "members", _key(member_key, "id", "email")], _body(properties))

    def remove_member(self, group_key: str|Mapping, member_key: str|Mapping) -> None:
        self._call("DELETE", ["groups", _key(group_key, "id", "email"),
                              "members", _key(member_key, "id", "email")])

    def has_member(self, group_key: str|Mapping, member_key: str|Mapping) -> bool:
        """Also true for indirect membership through nested groups"""
        r = self._call("GET", ["groups", _key(group_key, "id", "email"),
                               "hasMember", _key(member_key, "id", "email")])
        return bool(r.get("isMember", False))

    # org units

    def list_org_units(self, customer: str = MY_CUSTOMER, org_unit_path: str|None = None,
                       type: str = "children") -> list[dict]:
        """
        https://developers.google.com/admin-sdk/directory/reference/rest/v1/orgunits/list
        Not actually paged by the service but the same machinery handles that fine.
        """
        return self._list(["customer", _key(customer), "orgunits"], "organizationalUnits",
                          orgUnitPath=org_unit_path, type=_choice("type", type, _ORG_UNIT_TYPES))

    def get_org_unit(self, org_unit_path: str, customer: str = MY_CUSTOMER) -> dict:
        """org_unit_path with or without the leading '/', or an 'id:...' id"""
        return self._call("GET", ["customer", _key(customer), "orgunits", _org_unit(org_unit_path)])

    def create_org_unit(self, properties: Mapping|DirectoryResourceBase, customer: str = MY_CUSTOMER,
                        max_attempts: int|None = None) -> dict:
        body = _body(properties)
        if not body.get("name"):
            raise ConfigurationError("create_org_unit needs a name")
        body.setdefault("parentOrgUnitPath", "/")
        return self._insert(["customer", _key(customer), "orgunits"], body, max_attempts)

    def update_org_unit(self, org_unit_path: str, properties: Mapping|DirectoryResourceBase,
                        customer: str = MY_CUSTOMER) -> dict:
        return self._call("PATCH", ["customer", _key(customer), "orgunits", _org_unit(org_unit_path)],
                          _body(properties))

    def delete_org_unit(self, org_unit_path: str, customer: str = MY_CUSTOMER) -> None:
        self._call("DELETE", ["customer", _key(customer), "orgunits", _org_unit(org_unit_path)])

    # roles

    def list_roles(self, customer: str = MY_CUSTOMER) -> list[dict]:
        return self._list(["customer", _key(customer), "roles"], "items", _MAX_RESULTS["roles"])

    def get_role(self, role_id: str|Mapping, customer: str = MY_CUSTOMER) -> dict:
        return self._call("GET", ["customer", _key(customer), "roles", _key(role_id, "roleId")])

    def list_privileges(self, customer: str = MY_CUSTOMER) -> list[dict]:
        return self._list(["customer", _key(customer), "roles", "ALL", "privileges"], "items")

    def list_role_assignments(self, customer: str = MY_CUSTOMER, user_key: str|Mapping|None = None,
                              role_id: str|Mapping|None = None) -> list[dict]:
        return self._list(["customer", _key(customer), "roleassignments"], "items",
                          _MAX_RESULTS["roleassignments"],
                          userKey=_key(user_key, "id", "primaryEmail") if user_key is not None else None,
                          roleId=_key(role_id, "roleId") if role_id is not None else None)

    def create_role_assignment(self, assignment: RoleAssignment|Mapping, customer: str = MY_CUSTOMER,
                               max_attempts: int|None = None) -> dict:
        if isinstance(assignment, RoleAssignment) and not assignment:
            raise ConfigurationError("Role assignment needs a roleId and assignedTo")
        return self._insert(["customer", _key(customer), "roleassignments"], _body(assignment), max_attempts)

    def delete_role_assignment(self, assignment_id: str|Mapping, customer: str = MY_CUSTOMER) -> None:
        self._call("DELETE", ["customer", _key(customer), "roleassignments",
                              _key(assignment_id, "roleAssignmentId")])

    # customers

    def get_customer(self, customer_key: str = MY_CUSTOMER) -> dict:
        return self._call("GET", ["customers", _key(customer_key)])

    def update_customer(self, customer_key: str,
                        properties: Mapping|DirectoryResourceBase) -> dict:
        """customer_key can be MY_CUSTOMER for the admin's own account"""
        return self._call("PATCH", ["customers", _key(customer_key)], _body(properties))
