"""
Well-known role keys.

The engine treats roles as opaque strings: these constants exist so callers
and tests do not repeat literals. No hierarchy is implied.
"""

from permgate.exceptions import ValidationError

# Project roles
ADMIN = "admin"
USER = "user"
CODEVIEWER = "codeviewer"
ISSUE_ADMIN = "issueadmin"

# Global roles
SYSTEM_ADMIN = "admin"
QUALITY_GATE_ADMIN = "gateadmin"
SCAN_EXECUTION = "scan"
PROVISIONING = "provisioning"


def validate_role(role: str) -> str:
    """Reject empty role keys; anything else is accepted as-is."""
    if not isinstance(role, str) or not role.strip():
        raise ValidationError("Role must be a non-empty string")
    return role
