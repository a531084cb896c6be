import asyncio
import ipaddress
import socket
from enum import Enum, auto
from typing import List, Union
from urllib.parse import urlparse

from media_fetcher.config.settings import config


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    BLOCKED = auto()
    INVALID = auto()


def _is_forbidden(ip: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]) -> bool:
    if ip.is_loopback:
        return not config.security.allow_localhost
    if ip.is_link_local or ip.is_multicast or ip.is_unspecified:
        return True
    if ip.is_private:
        return not config.security.allow_private_ips
    return False


async def _resolve(hostname: str) -> List[str]:
    addr_info = await asyncio.to_thread(socket.getaddrinfo, hostname, None)
    return [info[4][0] for info in addr_info]


class SecurityValidator:
    """
    Validate target URLs against SSRF before yt-dlp or the direct fetch
    touch them. Returns a result enum, the caller decides the error.
    """

    @staticmethod
    async def validate_url(url: str) -> UrlValidationResult:
        try:
            parsed = urlparse(url)
        except ValueError:
            return UrlValidationResult.INVALID

        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return UrlValidationResult.INVALID

        if not config.security.enable_ssrf_protection:
            return UrlValidationResult.OK

        try:
            addresses = await _resolve(parsed.hostname)
        except (socket.gaierror, UnicodeError):
            # Unresolvable here; let the tools report it
            return UrlValidationResult.OK

        for address in addresses:
            try:
                ip = ipaddress.ip_address(address.split("%", 1)[0])
            except ValueError:
                return UrlValidationResult.INVALID
            if _is_forbidden(ip):
                return UrlValidationResult.BLOCKED

        return UrlValidationResult.OK
