"""
URL validation for the fetch helpers.

Templates may call `fetch_json(url)` / `fetch_text(url)`. Those requests are
made from the build machine, so every URL is checked against private,
loopback and metadata addresses before a request goes out.
"""

import ipaddress
import logging
import re
import socket
from typing import List, Set
from urllib.parse import urlparse

import requests

logger = logging.getLogger('Tessera.fetch')


class UnsafeURLError(ValueError):
    """Raised when a URL fails validation; the message names the reason."""


class URLValidator:
    """Rejects URLs that would let a template reach internal services."""

    ALLOWED_SCHEMES: Set[str] = {'http', 'https'}

    BLOCKED_IP_RANGES: List[str] = [
        '0.0.0.0/8',
        '10.0.0.0/8',
        '100.64.0.0/10',
        '127.0.0.0/8',
        '169.254.0.0/16',
        '172.16.0.0/12',
        '192.0.0.0/24',
        '192.168.0.0/16',
        '198.18.0.0/15',
        '224.0.0.0/4',
        '240.0.0.0/4',
        '::1/128',
        '::/128',
        '::ffff:0:0/96',
        'fe80::/10',
        'fc00::/7',
        'ff00::/8',
    ]

    BLOCKED_HOSTNAMES: Set[str] = {
        'localhost',
        'localhost.localdomain',
        'ip6-localhost',
        'ip6-loopback',
        'metadata.google.internal',
    }

    SUSPICIOUS_PATTERNS = [r'%2f%2f', r'%5c%5c', r'\.\./', r'%2e%2e%2f']

    def __init__(self, allowed_domains: Set[str] = None):
        """
        Args:
            allowed_domains: When given, only these domains (and their
                subdomains) may be fetched.
        """
        self.allowed_domains = {d.lower() for d in allowed_domains or ()}
        self._blocked_networks = [ipaddress.ip_network(cidr) for cidr in self.BLOCKED_IP_RANGES]

    def validate(self, url: str) -> str:
        """
        Check a URL and return it unchanged.

        Raises:
            UnsafeURLError: if the URL is malformed, uses a non-HTTP scheme,
                targets a blocked host or resolves to a blocked address.
        """
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise UnsafeURLError(f"invalid URL: {url}")
        if parsed.scheme.lower() not in self.ALLOWED_SCHEMES:
            raise UnsafeURLError(f"unsupported URL scheme: {parsed.scheme}")
        if '@' in parsed.netloc:
            raise UnsafeURLError(f"credentials are not allowed in URLs: {url}")

        lowered = url.lower()
        if any(re.search(pattern, lowered) for pattern in self.SUSPICIOUS_PATTERNS):
            raise UnsafeURLError(f"URL contains suspicious patterns: {url}")

        hostname = (parsed.hostname or '').lower()
        if not hostname or hostname in self.BLOCKED_HOSTNAMES:
            raise UnsafeURLError(f"blocked hostname: {hostname or url}")
        if self.allowed_domains and not any(
            hostname == domain or hostname.endswith('.' + domain) for domain in self.allowed_domains
        ):
            raise UnsafeURLError(f"domain not in allowlist: {hostname}")

        for address in self._resolve_hostname(hostname):
            if not self.is_ip_allowed(address):
                raise UnsafeURLError(f"blocked IP address: {address}")
        return url

    def _resolve_hostname(self, hostname: str) -> List[str]:
        try:
            infos = socket.getaddrinfo(hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM)
        except socket.gaierror:
            raise UnsafeURLError(f"cannot resolve hostname: {hostname}") from None
        return sorted({info[4][0] for info in infos})

    def is_ip_allowed(self, address: str) -> bool:
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return False
        return not any(ip in network for network in self._blocked_networks)


class SafeRequestor:
    """Makes GET requests only after the URL passes validation."""

    USER_AGENT = 'Tessera/1.0.0 (Template Resolver)'

    def __init__(self, validator: URLValidator = None, session=None, timeout: int = 10):
        self.validator = validator or URLValidator()
        self.session = session or requests.Session()
        self.timeout = timeout

    def get(self, url: str, **kwargs) -> requests.Response:
        """
        Validate and fetch a URL.

        Redirects are not followed so a redirect cannot bypass validation.
        HTTP errors are raised as `requests.HTTPError`.
        """
        self.validator.validate(url)
        kwargs.setdefault('timeout', self.timeout)
        kwargs.setdefault('allow_redirects', False)
        headers = dict(kwargs.pop('headers', None) or {})
        headers.setdefault('User-Agent', self.USER_AGENT)
        logger.debug(f"Fetching {url}")
        response = self.session.get(url, headers=headers, **kwargs)
        response.raise_for_status()
        return response
