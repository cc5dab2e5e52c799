"""Security module for the UA Web Gateway.

Provides:
- Client certificate management for secured OPC UA endpoints
"""

from uaweb_gateway.security.certificates import CertificateManager

__all__ = ["CertificateManager"]
