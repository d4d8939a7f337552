"""
Python client for the portal API.
"""

from client.portal_client import PortalClient, PortalError

__all__ = ["PortalClient", "PortalError"]
