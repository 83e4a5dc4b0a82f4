"""HTTP session setup for reaching artifact repositories.

Corporate SSL inspection proxies (e.g. Netskope) re-sign traffic with certificates that
OpenSSL 3.x rejects under its strict key usage checks. When a CA bundle for such a proxy is
configured or found in a known location, the session verifies against it with relaxed flags.
"""

import logging
import os
import ssl
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.ssl_ import create_urllib3_context

logger = logging.getLogger(__name__)

# Known corporate SSL inspection cert bundle locations
CORPORATE_CERT_PATHS = [
    "/Library/Application Support/Netskope/STAgent/data/netskope-cert-bundle.pem",  # Netskope macOS
    "/etc/netskope/cert-bundle.pem",  # Netskope Linux
]


def find_ca_bundle(configured: Optional[str] = None) -> Optional[str]:
    """Return the configured CA bundle, or the first known corporate bundle present."""
    if configured:
        return configured
    for path in CORPORATE_CERT_PATHS:
        if os.path.exists(path):
            return path
    return None


class CorporateSSLAdapter(HTTPAdapter):
    """HTTP adapter that trusts a proxy CA bundle without OpenSSL 3.x strict flags."""

    def __init__(self, ca_bundle: str, **kwargs):
        self.ca_bundle = ca_bundle
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        ctx = create_urllib3_context()
        ctx.load_verify_locations(self.ca_bundle)
        ctx.verify_flags = ssl.VERIFY_DEFAULT
        kwargs['ssl_context'] = ctx
        return super().init_poolmanager(*args, **kwargs)


def create_session(user_agent: str, ca_bundle: Optional[str] = None) -> requests.Session:
    """
    Create a requests session for repository traffic.

    Args:
        user_agent: User-Agent header value
        ca_bundle: Explicit CA bundle; known corporate locations are tried otherwise

    Returns:
        A configured requests.Session
    """
    session = requests.Session()
    session.headers.update({
        "User-Agent": user_agent,
        "Accept": "application/xml, text/xml, */*",
    })

    bundle = find_ca_bundle(ca_bundle)
    if bundle:
        logger.info(f"Using CA bundle {bundle} for repository connections")
        session.mount('https://', CorporateSSLAdapter(ca_bundle=bundle))

    return session
