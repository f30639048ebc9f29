"""Provider interfaces for siteprov."""
from __future__ import annotations

from .apt import AptError, AptProvider
from .certbot import CertbotProvider, CertbotResult
from .nginx import NginxError, NginxProvider, NginxRenderResult
from .systemd import SystemdError, SystemdProvider

__all__ = [
    "AptError",
    "AptProvider",
    "CertbotProvider",
    "CertbotResult",
    "NginxError",
    "NginxProvider",
    "NginxRenderResult",
    "SystemdError",
    "SystemdProvider",
]
