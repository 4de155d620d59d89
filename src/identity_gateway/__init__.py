"""
identity_gateway

Top-level package for the identity gateway: multi-mode authentication and token
issuance in front of the business API.

Responsibilities:
- Expose package version metadata.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"


# --- Module Notes -----------------------------------------------------------
# Keep this file minimal to avoid import-time side effects across the codebase.
