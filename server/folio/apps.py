from urllib.parse import urlparse

from django.apps import AppConfig
from django.conf import settings
from django.core.checks import Error, Tags, Warning, register


def _origin_host(origin: str) -> str:
    try:
        parsed = urlparse(origin)
    except ValueError:
        return ""
    if parsed.scheme not in {"http", "https"}:
        return ""
    return (parsed.hostname or "").lower()


def check_passkey_settings(app_configs, **kwargs):
    """
    Catch relying party misconfiguration at startup instead of at the first
    failed ceremony.
    """
    issues = []

    origin = getattr(settings, "WEBAUTHN_ORIGIN", "")
    rp_id = (getattr(settings, "WEBAUTHN_RP_ID", "") or "").lower()
    host = _origin_host(origin)

    if not host:
        issues.append(
            Error(
                f"WEBAUTHN_ORIGIN {origin!r} is not a valid http(s) origin.",
                hint="Use the exact scheme, host and port the browser shows, e.g. https://example.com",
                id="folio.E001",
            )
        )
    elif host != rp_id and not host.endswith(f".{rp_id}"):
        issues.append(
            Error(
                f"WEBAUTHN_ORIGIN host {host!r} is not {rp_id!r} or one of its subdomains.",
                hint="Browsers refuse WebAuthn ceremonies when the RP ID does not cover the origin.",
                id="folio.E002",
            )
        )

    if not getattr(settings, "ADMIN_PASSWORD", ""):
        issues.append(
            Warning(
                "ADMIN_PASSWORD is not set; password login is disabled.",
                hint="Set ADMIN_PASSWORD to register the first passkey.",
                id="folio.W001",
            )
        )

    if getattr(settings, "WEBAUTHN_USER_VERIFICATION", "") not in {"required", "preferred", "discouraged"}:
        issues.append(
            Error(
                "WEBAUTHN_USER_VERIFICATION must be required, preferred or discouraged.",
                id="folio.E003",
            )
        )

    return issues


class FolioConfig(AppConfig):
    name = "folio"

    def ready(self) -> None:
        register(Tags.security)(check_passkey_settings)
