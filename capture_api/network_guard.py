"""
Outbound request guard for rendering contexts.

Every request a browser context issues (top-level navigation, sub-resources,
popups and each redirect hop) is routed through NetworkGuard before it leaves
the browser. Requests whose host resolves into private, loopback, link-local
or cloud metadata space are aborted unless the process was started with
private networks allowed.
"""
import asyncio
import ipaddress
import socket
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from playwright.async_api import BrowserContext, Error as PlaywrightError, Route

from .log import log_warning

# Schemes that never hit the network
LOCAL_SCHEMES = ("data", "blob", "about")

CLOUD_METADATA_HOSTS = frozenset({
    "metadata",
    "metadata.google.internal",
    "metadata.azure.internal",
    "instance-data",
    "instance-data.ec2.internal",
})

CLOUD_METADATA_ADDRESSES = frozenset({
    ipaddress.ip_address("169.254.169.254"),
    ipaddress.ip_address("169.254.170.2"),
    ipaddress.ip_address("fd00:ec2::254"),
    ipaddress.ip_address("100.100.100.200"),
})

SHARED_ADDRESS_SPACE = ipaddress.ip_network("100.64.0.0/10")


def _is_ip_disallowed(ip_str: str) -> bool:
    try:
        ip = ipaddress.ip_address(ip_str.split("%", 1)[0])
    except ValueError:
        return True
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip in CLOUD_METADATA_ADDRESSES
        or ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
        or (ip.version == 4 and ip in SHARED_ADDRESS_SPACE)
    )


async def resolve_host_ips(host: str) -> List[str]:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError, OSError):
        return []
    ips: List[str] = []
    for family, _type, _proto, _canonname, sockaddr in infos:
        if family in (socket.AF_INET, socket.AF_INET6):
            ips.append(sockaddr[0])
    return list(dict.fromkeys(ips))


async def is_private_host(hostname: Optional[str]) -> bool:
    """True when the host is internal, or cannot be resolved at all."""
    if not hostname:
        return True
    host = hostname.strip("[]").rstrip(".").lower()
    if host == "localhost" or host.endswith(".localhost") or host in CLOUD_METADATA_HOSTS:
        return True
    try:
        ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        pass
    else:
        return _is_ip_disallowed(host)

    ips = await resolve_host_ips(host)
    if not ips:
        return True
    return any(_is_ip_disallowed(ip) for ip in ips)


async def is_private_url(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme in LOCAL_SCHEMES:
        return False
    return await is_private_host(parsed.hostname)


class NetworkGuard:
    """Checks every request a browser context sends, one redirect hop at a time.

    Routes are installed on the BrowserContext so popups opened by the page are
    covered too. Requests are fetched by the guard with redirects disabled and
    the response is handed back to the browser; a 3xx whose Location points at
    a private host is aborted instead, and a redirect that is let through comes
    back to the guard as a new request.
    """

    def __init__(self, allow_private_networks: bool = False):
        self.allow_private_networks = allow_private_networks

    @property
    def enabled(self) -> bool:
        return not self.allow_private_networks

    async def install(self, context: BrowserContext) -> None:
        if not self.enabled:
            return
        await context.route("**/*", self._handle_route)

    async def _handle_route(self, route: Route) -> None:
        url = route.request.url
        if urlparse(url).scheme in LOCAL_SCHEMES:
            await route.continue_()
            return
        if await is_private_url(url):
            log_warning(f"[GUARD] Aborting request to {url}")
            await route.abort("blockedbyclient")
            return

        try:
            response = await route.fetch(max_redirects=0)
        except PlaywrightError as e:
            log_warning(f"[GUARD] Request to {url} failed: {e}")
            await route.abort("failed")
            return

        location = response.headers.get("location")
        if 300 <= response.status < 400 and location:
            target = urljoin(url, location)
            if await is_private_url(target):
                log_warning(f"[GUARD] Aborting redirect from {url} to {target}")
                await route.abort("blockedbyclient")
                return
        await route.fulfill(response=response)
