"""Constants for Porthor."""

__all__ = [
    "BIND_USERNAME_PLACEHOLDER",
    "CONFIG_PATH",
    "LDAP_TIMEOUT",
    "MAX_GROUP_DEPTH",
    "ROLE_PREFIX",
    "WILDCARD_USERNAME",
]

BIND_USERNAME_PLACEHOLDER = "&username&"
"""Placeholder in ``client.bindUserPattern`` replaced with the username."""

CONFIG_PATH = "/etc/porthor/porthor.yaml"
"""Default configuration path."""

LDAP_TIMEOUT = 5.0
"""Timeout (in seconds) for LDAP queries and binds."""

MAX_GROUP_DEPTH = 10
"""Depth at which recursive group resolution is abandoned.

Group membership is searched starting at depth 0 for the user.  A search at
this depth or deeper means the group graph is either cyclic or nested more
deeply than any sane directory would be, so resolution fails rather than
looping forever.
"""

ROLE_PREFIX = "ROLE_"
"""Prefix added to the slugified group name to form a role token."""

WILDCARD_USERNAME = "*"
"""Username that would match every entry and is therefore always rejected."""
