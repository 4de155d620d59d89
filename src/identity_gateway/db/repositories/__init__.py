"""
identity_gateway.db.repositories

Repository package.

Responsibilities:
- Group data-access repositories for the identity registry.
"""

# Package marker; repositories are imported directly from submodules.


# --- Module Notes -----------------------------------------------------------
# Repositories are intentionally thin; registry rules live in `services.identity_registry`.
