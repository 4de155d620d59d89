"""
identity_gateway.auth

Authentication/authorization package.

Responsibilities:
- Mode resolution and one-shot auth configuration.
- End-user and service token issuing/validation.
- Credentialed and federated login flows, role mapping, per-request context.
- FastAPI auth dependencies.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Only `auth.deps` touches FastAPI; everything else is framework-free.
