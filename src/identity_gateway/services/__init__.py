"""
identity_gateway.services

Service layer.

Responsibilities:
- Identity registry rules (registration, resolution, validation).
- Process-wide validation cache shared by request-scoped registries.
"""

# Package marker.
