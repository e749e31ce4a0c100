"""
Request security assessment.

Grades the transport and header hygiene of an incoming request.
"""

from dataclasses import dataclass, field
from typing import List

from fastapi import Request

from medimind.api.access.audit import RiskLevel


PROXY_HEADERS = ("x-forwarded-for", "x-real-ip")


@dataclass
class SessionSecurity:
    is_valid: bool
    security_level: RiskLevel
    warnings: List[str] = field(default_factory=list)


def assess_request_security(request: Request) -> SessionSecurity:
    """
    Assess a request.

    Plain HTTP is low. A missing User-Agent is medium. Proxy headers
    downgrade an otherwise high level to medium.
    """
    warnings: List[str] = []
    level = RiskLevel.HIGH

    forwarded_proto = request.headers.get("x-forwarded-proto")
    if request.url.scheme != "https" and forwarded_proto != "https":
        warnings.append("Connection not using HTTPS")
        level = RiskLevel.LOW

    if not request.headers.get("user-agent"):
        warnings.append("Missing User-Agent header")
        level = RiskLevel.MEDIUM

    for header in PROXY_HEADERS:
        if request.headers.get(header):
            warnings.append(f"Potentially proxied request detected: {header}")
            if level is RiskLevel.HIGH:
                level = RiskLevel.MEDIUM

    return SessionSecurity(
        is_valid=level is not RiskLevel.LOW,
        security_level=level,
        warnings=warnings,
    )
