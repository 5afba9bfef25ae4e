"""Zoho CRM configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import require_env_vars

DEFAULT_ZOHO_API_DOMAIN = "https://www.zohoapis.com"
DEFAULT_ZOHO_ACCOUNTS_URL = "https://accounts.zoho.com"


@dataclass(frozen=True, slots=True)
class ZohoConfig:
    """Holds OAuth client credentials and endpoints for the Zoho CRM API."""

    client_id: str
    client_secret: str
    refresh_token: str
    api_domain: str = DEFAULT_ZOHO_API_DOMAIN
    accounts_url: str = DEFAULT_ZOHO_ACCOUNTS_URL

    @classmethod
    def from_environment(cls) -> ZohoConfig:
        values = require_env_vars(("ZOHO_CLIENT_ID", "ZOHO_CLIENT_SECRET", "ZOHO_REFRESH_TOKEN"))
        return cls(
            client_id=values["ZOHO_CLIENT_ID"],
            client_secret=values["ZOHO_CLIENT_SECRET"],
            refresh_token=values["ZOHO_REFRESH_TOKEN"],
            api_domain=os.getenv("ZOHO_API_DOMAIN") or DEFAULT_ZOHO_API_DOMAIN,
            accounts_url=os.getenv("ZOHO_ACCOUNTS_URL") or DEFAULT_ZOHO_ACCOUNTS_URL,
        )


def get_zoho_config() -> ZohoConfig:
    return ZohoConfig.from_environment()
