"""
identity_gateway.clients

Outbound clients used by the tool-calling layer.

Responsibilities:
- Obtain (and cache) service tokens for a correlation id.
- Call the business API with service-token credentials attached.
"""

# Package marker.
