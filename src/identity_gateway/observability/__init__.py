"""
identity_gateway.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation (request id, tracking id) for log enrichment.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Token failure reasons are only ever reported through these logs, never in responses.
