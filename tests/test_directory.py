from unittest.mock import MagicMock
import json

import pytest
import requests

from gwsadmin.access import BearerToken, Profile, ProfileStore
from gwsadmin.config import DirectoryConfig
from gwsadmin.directory import Directory, Member, RoleAssignment
from gwsadmin.errors import (AuthError, ConfigurationError, RateLimitExhausted,
                             RequestFailed, TransportError)

BASE = "https://admin.googleapis.com/admin/directory/v1"

def response(status, body=None):
    text = "" if body is None else body if isinstance(body, str) else json.dumps(body)
    return MagicMock(status_code=status, text=text)

def make_directory(*responses, config=None, credential=None):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = list(responses)
    sleep = MagicMock()
    d = Directory(credential or BearerToken("tok"), config=config, session=session, sleep=sleep)
    return d, session, sleep

def calls(session):
    return [(c.args[0], c.args[1], c.kwargs) for c in session.request.call_args_list]

def test_list_users_pages():
    d, session, _ = make_directory(
        response(200, {"users": [{"primaryEmail": "a@example.com"}], "nextPageToken": "p2"}),
        response(200, {"users": [{"primaryEmail": "b@example.com"}]}))
    users = d.list_users(query="orgUnitPath=/Sales", order_by="email", sort_order="descending")
    assert([u["primaryEmail"] for u in users] == ["a@example.com", "b@example.com"])
    (m1, u1, k1), (m2, u2, k2) = calls(session)
    assert(m1 == "GET" and u1 == f"{BASE}/users")
    assert(k1["params"] == {"customer": "my_customer", "query": "orgUnitPath=/Sales",
                            "orderBy": "email", "sortOrder": "DESCENDING",
                            "projection": "basic", "maxResults": 500})
    assert(k2["params"]["pageToken"] == "p2")
    assert(k1["headers"]["Authorization"] == "Bearer tok")

def test_list_users_by_domain():
    d, session, _ = make_directory(response(200, {"users": []}))
    assert(d.list_users(domain="example.com", show_deleted=True) == [])
    params = calls(session)[0][2]["params"]
    assert(params["domain"] == "example.com")
    assert("customer" not in params)
    assert(params["showDeleted"] == "true")

def test_list_users_bad_enum():
    d, session, _ = make_directory()
    with pytest.raises(ConfigurationError):
        d.list_users(projection="everything")
    with pytest.raises(ConfigurationError):
        d.list_users(order_by="lastLogin")
    session.request.assert_not_called()

def test_list_failure_raises():
    d, _, _ = make_directory(response(200, {"groups": [{"id": "1"}], "nextPageToken": "x"}),
                             response(403, {"error": {"code": 403, "message": "Not Authorized"}}))
    with pytest.raises(RequestFailed) as e:
        d.list_groups()
    assert(e.value.status == 403)
    assert("Not Authorized" in e.value.body)

def test_page_size_capped_per_resource():
    d, session, _ = make_directory(response(200, {"groups": []}), response(200, {"items": []}),
                                   config=DirectoryConfig(page_size=300))
    d.list_groups(user_key="a@example.com")
    d.list_roles()
    p_groups = calls(session)[0][2]["params"]
    p_roles = calls(session)[1][2]["params"]
    assert(p_groups == {"userKey": "a@example.com", "maxResults": 200})
    assert(p_roles["maxResults"] == 100)

def test_no_page_size():
    d, session, _ = make_directory(response(200, {"users": []}), config=DirectoryConfig(page_size=None))
    d.list_users()
    assert("maxResults" not in calls(session)[0][2]["params"])

def test_create_user_retries_rate_limit():
    d, session, sleep = make_directory(response(503, "backend busy"),
                                       response(200, {"id": "42", "primaryEmail": "new@example.com"}))
    user = d.create_user({"primaryEmail": "new@example.com", "name": {"givenName": "N", "familyName": "U"},
                          "password": "secretsecret"})
    assert(user == {"id": "42", "primaryEmail": "new@example.com"})
    assert(session.request.call_count == 2)
    assert(sleep.call_count == 1)
    method, url, kwargs = calls(session)[1]
    assert(method == "POST" and url == f"{BASE}/users")
    assert(kwargs["json"]["name"] == {"givenName": "N", "familyName": "U"})

def test_create_user_rate_limit_exhausted():
    d, session, sleep = make_directory(*[response(503, "busy") for _ in range(3)])
    with pytest.raises(RateLimitExhausted) as e:
        d.create_user({"primaryEmail": "new@example.com"}, max_attempts=2)
    assert(e.value.attempts == 3)
    assert(session.request.call_count == 3)
    assert(sleep.call_count == 2)

def test_create_user_conflict_not_retried():
    d, session, sleep = make_directory(response(409, {"error": {"message": "Entity already exists."}}))
    with pytest.raises(RequestFailed) as e:
        d.create_user({"primaryEmail": "dupe@example.com"})
    assert(e.value.status == 409)
    assert(not isinstance(e.value, RateLimitExhausted))
    sleep.assert_not_called()

def test_create_user_validation():
    d, session, _ = make_directory()
    with pytest.raises(ConfigurationError):
        d.create_user({"name": {"givenName": "x"}})
    with pytest.raises(ConfigurationError):
        d.create_user({"primaryEmail": "a@example.com"}, max_attempts=9)
    session.request.assert_not_called()

def test_get_update_delete_user():
    d, session, _ = make_directory(response(200, {"id": "1", "primaryEmail": "a@example.com"}),
                                   response(200, {"id": "1", "suspended": True}),
                                   response(204))
    u = d.get_user("a@example.com", projection="FULL")
    assert(d.update_user(u, {"suspended": True}) == {"id": "1", "suspended": True})
    assert(d.delete_user({"primaryEmail": "a@example.com"}) is None)
    (m1, u1, k1), (m2, u2, k2), (m3, u3, _) = calls(session)
    assert((m1, u1) == ("GET", f"{BASE}/users/a@example.com"))
    assert(k1["params"] == {"projection": "full"})
    # id wins over primaryEmail when both are present
    assert((m2, u2) == ("PATCH", f"{BASE}/users/1"))
    assert(k2["json"] == {"suspended": True})
    assert((m3, u3) == ("DELETE", f"{BASE}/users/a@example.com"))

def test_user_not_found():
    d, _, _ = make_directory(response(404, {"error": {"code": 404, "message": "Resource Not Found: userKey"}}))
    with pytest.raises(RequestFailed) as e:
        d.get_user("ghost@example.com")
    assert(e.value.status == 404)

def test_make_admin_and_undelete():
    d, session, _ = make_directory(response(204), response(204))
    d.make_admin("a@example.com", False)
    d.undelete_user({"id": "99"}, "/Restored")
    (m1, u1, k1), (m2, u2, k2) = calls(session)
    assert(u1 == f"{BASE}/users/a@example.com/makeAdmin" and k1["json"] == {"status": False})
    assert(u2 == f"{BASE}/users/99/undelete" and k2["json"] == {"orgUnitPath": "/Restored"})
    with pytest.raises(ConfigurationError):
        d.make_admin("a@example.com", "yes")

def test_aliases():
    d, session, _ = make_directory(response(200, {"aliases": [{"alias": "x@example.com"}]}),
                                   response(200, {"alias": "y@example.com"}),
                                   response(204))
    assert(d.list_user_aliases("a@example.com") == [{"alias": "x@example.com"}])
    assert(d.add_user_alias("a@example.com", "y@example.com")["alias"] == "y@example.com")
    d.remove_user_alias("a@example.com", "x@example.com")
    urls = [c[1] for c in calls(session)]
    assert(urls == [f"{BASE}/users/a@example.com/aliases"] * 2 +
                   [f"{BASE}/users/a@example.com/aliases/x@example.com"])
    assert(calls(session)[1][2]["json"] == {"alias": "y@example.com"})

def test_groups_and_members():
    d, session, _ = make_directory(response(200, {"email": "team@example.com", "id": "g1"}),
                                   response(200, {"members": [{"email": "a@example.com", "role": "OWNER"}],
                                                  "nextPageToken": "n"}),
                                   response(200, {"members": [{"email": "b@example.com", "role": "MANAGER"}]}),
                                   response(200, {"email": "c@example.com", "role": "MEMBER"}),
                                   response(200, {"isMember": True}))
    g = d.create_group({"email": "team@example.com", "name": "Team"})
    members = d.list_members(g, roles=["owner", "MANAGER"], include_derived=True)
    assert([m["email"] for m in members] == ["a@example.com", "b@example.com"])
    d.add_member(g, "c@example.com")
    assert(d.has_member("team@example.com", "c@example.com"))
    c = calls(session)
    assert(c[1][1] == f"{BASE}/groups/g1/members")
    assert(c[1][2]["params"]["roles"] == "OWNER,MANAGER")
    assert(c[1][2]["params"]["includeDerivedMembership"] == "true")
    assert(c[1][2]["params"]["maxResults"] == 200)
    assert(c[3][2]["json"] == {"email": "c@example.com", "role": "MEMBER"})
    assert(c[4][1] == f"{BASE}/groups/team@example.com/hasMember/c@example.com")

def test_member_role_validation():
    with pytest.raises(ConfigurationError):
        Member(email="a@example.com", role="BOSS")
    assert(Member(email="a@example.com", role="manager").role == "MANAGER")
    d, session, _ = make_directory()
    with pytest.raises(ConfigurationError):
        d.list_members("team@example.com", roles="admin")
    session.request.assert_not_called()

def test_org_units():
    d, session, _ = make_directory(response(200, {"kind": "admin#directory#orgUnits",
                                                  "organizationalUnits": [{"orgUnitPath": "/Sales"},
                                                                          {"orgUnitPath": "/Eng"}]}),
                                   response(200, {"orgUnitPath": "/Sales/West"}),
                                   response(200, {"name": "West", "orgUnitPath": "/Sales/West"}),
                                   response(204))
    ous = d.list_org_units(type="all")
    assert([o["orgUnitPath"] for o in ous] == ["/Sales", "/Eng"])
    d.get_org_unit("/Sales/West")
    d.create_org_unit({"name": "West", "parentOrgUnitPath": "/Sales"})
    d.delete_org_unit("Sales/West", customer="C0123")
    c = calls(session)
    assert(c[0][1] == f"{BASE}/customer/my_customer/orgunits")
    assert(c[0][2]["params"] == {"type": "all"})
    assert(c[1][1] == f"{BASE}/customer/my_customer/orgunits/Sales/West")
    assert(c[2][2]["json"] == {"name": "West", "parentOrgUnitPath": "/Sales"})
    assert(c[3][1] == f"{BASE}/customer/C0123/orgunits/Sales/West")
    with pytest.raises(ConfigurationError):
        d.list_org_units(type="grandchildren")

def test_roles_and_assignments():
    d, session, _ = make_directory(response(200, {"items": [{"roleId": "1", "roleName": "_SEED_ADMIN_ROLE"}]}),
                                   response(200, {"items": [{"roleAssignmentId": "ra1"}]}),
                                   response(200, {"roleAssignmentId": "ra2"}),
                                   response(204))
    roles = d.list_roles()
    assert(roles[0]["roleName"] == "_SEED_ADMIN_ROLE")
    assert(d.list_role_assignments(role_id=roles[0]) == [{"roleAssignmentId": "ra1"}])
    ra = d.create_role_assignment(RoleAssignment(roleId="1", assignedTo="1234"))
    d.delete_role_assignment(ra)
    c = calls(session)
    assert(c[1][2]["params"] == {"roleId": "1", "maxResults": 200})
    assert(c[2][2]["json"] == {"roleId": "1", "assignedTo": "1234", "scopeType": "CUSTOMER"})
    assert(c[3][1] == f"{BASE}/customer/my_customer/roleassignments/ra2")
    with pytest.raises(ConfigurationError):
        RoleAssignment(roleId="1", assignedTo="2", scopeType="ORG_UNIT")

def test_customer():
    d, session, _ = make_directory(response(200, {"id": "C0123", "customerDomain": "example.com"}),
                                   response(200, {"id": "C0123", "language": "en"}))
    assert(d.get_customer()["customerDomain"] == "example.com")
    assert(d.update_customer("C0123", {"language": "en"})["language"] == "en")
    c = calls(session)
    assert(c[0][1] == f"{BASE}/customers/my_customer")
    assert((c[1][0], c[1][1]) == ("PATCH", f"{BASE}/customers/C0123"))

def test_auth_failure_sends_nothing(tmp_path):
    d, session, _ = make_directory(credential=Profile("missing"))
    d.store = ProfileStore(tmp_path)
    with pytest.raises(AuthError):
        d.list_users()
    session.request.assert_not_called()

def test_transport_failure():
    d, _, sleep = make_directory(requests.exceptions.ConnectionError("no route"))
    with pytest.raises(TransportError):
        d.create_group({"email": "g@example.com"})
    sleep.assert_not_called()

def test_token_resolved_per_operation():
    store = MagicMock()
    store.get_token.return_value.access_token = "profile-token"
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = [response(200, {"users": [], "nextPageToken": "n"}),
                                   response(200, {"users": []}),
                                   response(200, {"id": "C1"})]
    d = Directory(Profile("admin"), store=store, session=session)
    d.list_users()
    d.get_customer()
    # one resolution per operation, not per page
    assert(store.get_token.call_count == 2)
    assert(all(c.kwargs["headers"]["Authorization"] == "Bearer profile-token"
               for c in session.request.call_args_list))

def test_group_aliases_and_privileges():
    d, session, _ = make_directory(response(200, {"aliases": [{"alias": "old@example.com"}]}),
                                   response(200, {"alias": "new@example.com"}),
                                   response(204),
                                   response(200, {"items": [{"privilegeName": "USERS_RETRIEVE"}]}))
    assert(d.list_group_aliases({"email": "team@example.com"}) == [{"alias": "old@example.com"}])
    d.add_group_alias("team@example.com", "new@example.com")
    d.remove_group_alias("team@example.com", "old@example.com")
    assert(d.list_privileges()[0]["privilegeName"] == "USERS_RETRIEVE")
    c = calls(session)
    assert(c[0][1] == f"{BASE}/groups/team@example.com/aliases")
    assert("maxResults" not in c[0][2]["params"])
    assert(c[2][1] == f"{BASE}/groups/team@example.com/aliases/old@example.com")
    assert(c[3][1] == f"{BASE}/customer/my_customer/roles/ALL/privileges")

@pytest.mark.parametrize("path", ["/", "//", ""])
def test_root_org_unit_path_rejected(path):
    d, session, _ = make_directory(response(200, {}))
    with pytest.raises(ConfigurationError):
        d.get_org_unit(path)
    with pytest.raises(ConfigurationError):
        d.update_org_unit(path, {"description": "root"})
    with pytest.raises(ConfigurationError):
        d.delete_org_unit(path)
    session.request.assert_not_called()

def test_org_unit_trailing_slash():
    d, session, _ = make_directory(response(204))
    d.delete_org_unit("/Sales/West/")
    assert(calls(session)[0][1] == f"{BASE}/customer/my_customer/orgunits/Sales/West")
