"""Public interface for the Zoho CRM adapter."""

from __future__ import annotations

from .auth import ZohoOAuth
from .client import ZohoCrmSource, build_zoho_source, default_resilience_config

__all__ = ["ZohoCrmSource", "ZohoOAuth", "build_zoho_source", "default_resilience_config"]
