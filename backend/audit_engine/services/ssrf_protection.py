"""
SSRF Protection - Keep the crawler away from private and metadata addresses.
"""
import ipaddress
import socket
from urllib.parse import urlparse

from audit_engine.config import settings
from audit_engine.logger import get_logger

logger = get_logger("ssrf")


class SSRFProtection:
    """Validates crawl targets before any request is made."""

    # Private/internal IP ranges to block
    BLOCKED_RANGES = [
        ipaddress.ip_network("10.0.0.0/8"),
        ipaddress.ip_network("172.16.0.0/12"),
        ipaddress.ip_network("192.168.0.0/16"),
        ipaddress.ip_network("127.0.0.0/8"),
        ipaddress.ip_network("169.254.0.0/16"),
        ipaddress.ip_network("0.0.0.0/8"),
        ipaddress.ip_network("::1/128"),
        ipaddress.ip_network("fc00::/7"),
        ipaddress.ip_network("fe80::/10"),
    ]

    BLOCKED_HOSTS = {
        "localhost",
        "metadata.google.internal",
        "169.254.169.254",  # cloud metadata
    }

    @classmethod
    def _blocked_range(cls, address: str):
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return None
        return next((r for r in cls.BLOCKED_RANGES if ip.version == r.version and ip in r), None)

    @classmethod
    def validate_url(cls, url: str, allow_private: bool = None) -> tuple[bool, str]:
        """
        Validate a crawl target.

        Unresolvable hosts are allowed through; the request itself will fail.

        Returns:
            tuple: (is_valid, error_message)
        """
        if allow_private is None:
            allow_private = settings.ALLOW_PRIVATE_TARGETS

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return False, f"Invalid scheme: {parsed.scheme}"

        hostname = parsed.hostname
        if not hostname:
            return False, "Empty hostname"
        if allow_private:
            return True, ""
        if hostname.lower() in cls.BLOCKED_HOSTS:
            return False, f"Blocked hostname: {hostname}"

        blocked = cls._blocked_range(hostname)
        if blocked:
            return False, f"IP {hostname} is in blocked range {blocked}"

        try:
            addresses = {info[4][0] for info in socket.getaddrinfo(hostname, None)}
        except socket.gaierror:
            logger.warning(f"DNS resolution failed for {hostname}")
            return True, ""

        for address in sorted(addresses):
            blocked = cls._blocked_range(address)
            if blocked:
                return False, f"IP {address} is in blocked range {blocked}"
        return True, ""
