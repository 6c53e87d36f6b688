"""監査ログ用の端末分類とネットワーク情報の粗視化

IP アドレスはネットワーク単位のプレフィックスにまで丸めてから扱い、
正確なアドレスや位置情報は保持しない。
"""
from __future__ import annotations

import ipaddress
from typing import Any, Optional

from .exceptions import EnrichmentFailure

IPV4_PREFIX_LENGTH = 16
IPV6_PREFIX_LENGTH = 48

UNKNOWN = "Unknown"
LOCAL_NETWORK = "Local Network"
EXTERNAL_NETWORK = "External Network"

# 判定順が重要: iOS の UA は "Mac OS X" を、Android の UA は "Linux" を含む
_DEVICE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("iOS Device", ("iphone", "ipad", "ipod")),
    ("Android Device", ("android",)),
    ("Windows Device", ("windows",)),
    ("Mac Device", ("macintosh", "mac os", "macos", "darwin")),
    ("Linux Device", ("linux", "x11")),
)
OTHER_DESKTOP = "Desktop Browser"


def classify_device(user_agent: Optional[str]) -> Optional[str]:
    """User-Agent 文字列を固定キーワードで端末カテゴリに分類する"""

    if user_agent is None:
        return None
    if not isinstance(user_agent, str):
        raise EnrichmentFailure(f"user agent must be a string, got {type(user_agent).__name__}")
    lowered = user_agent.lower()
    if not lowered.strip():
        return None
    for label, keywords in _DEVICE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return label
    return OTHER_DESKTOP


def _parse_address(address: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(str(address).strip())
    except ValueError as exc:
        raise EnrichmentFailure(f"invalid IP address: {address!r}") from exc


def generalize_address(address: str) -> str:
    """アドレスをネットワークプレフィックス (IPv4 /16, IPv6 /48) に丸める"""

    parsed = _parse_address(address)
    prefix = IPV4_PREFIX_LENGTH if parsed.version == 4 else IPV6_PREFIX_LENGTH
    network = ipaddress.ip_network(f"{parsed}/{prefix}", strict=False)
    return str(network)


def build_location_hint(address: str) -> dict[str, Any]:
    """IP から導いた粗い位置ヒント。都市・国は解決しない"""

    parsed = _parse_address(address)
    local = parsed.is_private or parsed.is_loopback or parsed.is_link_local
    return {
        "network": generalize_address(address),
        "region": LOCAL_NETWORK if local else EXTERNAL_NETWORK,
        "city": UNKNOWN,
        "country": UNKNOWN,
    }
