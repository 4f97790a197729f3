"""
A thin wrapper around the Google Workspace Admin SDK Directory REST API.
Users, groups, members, org units, roles and customers are exposed as plain
method calls that hand back ordinary dicts and lists.

The interesting parts are shared by every call: resolving a bearer token
(either given directly or from a stored profile), paging through list
results, backing off when inserts get rate limited, and normalizing the JSON
that comes back.  The per-resource methods on Directory are just URLs and
parameters on top of those.
"""
from .access import BearerToken, Profile, ProfileStore, resolve_token
from .config import DirectoryConfig
from .directory import Directory, Member, RoleAssignment
from .errors import *
from .resources import normalize

__version__ = "0.1.0"
