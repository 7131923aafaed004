"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover everything the audit log can contain.
"""

# ─── Accounts ────────────────────────────────────────────

ACCOUNT_REGISTERED = "account.registered"  # local registration
ACCOUNT_CREATED = "account.created"  # first federated sign-in

# ─── Provider links ──────────────────────────────────────

PROVIDER_LINKED = "provider.linked"
PROVIDER_TOKENS_REFRESHED = "provider.tokens_refreshed"

# ─── Sessions ────────────────────────────────────────────

SESSION_ESTABLISHED = "session.established"
SESSION_DESTROYED = "session.destroyed"

# ─── Roles ───────────────────────────────────────────────

ROLE_GRANTED = "role.granted"
ROLE_REVOKED = "role.revoked"
