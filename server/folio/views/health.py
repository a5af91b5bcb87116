import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from folio.store import KeyValueStore
from folio.utils import StoreUnavailable

logger = logging.getLogger(__name__)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """
    Health check endpoint for monitoring.
    """
    checks = {}

    try:
        checks["store"] = "ok" if KeyValueStore.from_settings().ping() else "error"
    except StoreUnavailable as exc:
        checks["store"] = f"error: {exc}"

    status_ok = all(value == "ok" for value in checks.values())

    return Response(
        {"status": "healthy" if status_ok else "degraded", "checks": checks},
        status=200 if status_ok else 503,
    )
