from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.reverse import reverse


@api_view(["GET"])
@permission_classes([AllowAny])
def api_root(request, format=None):
    """
    API root endpoint to make the browsable API navigable.
    """
    return Response(
        {
            "health": reverse("health_check", request=request, format=format),
            "auth_login": reverse("auth_login", request=request, format=format),
            "auth_logout": reverse("auth_logout", request=request, format=format),
            "auth_me": reverse("auth_me", request=request, format=format),
            "passkeys": reverse("passkey_list", request=request, format=format),
            "passkey_status": reverse("passkey_status", request=request, format=format),
            "passkey_check_existing": reverse(
                "passkey_check_existing", request=request, format=format
            ),
            "passkey_register_begin": reverse(
                "passkey_register_begin", request=request, format=format
            ),
            "passkey_register_complete": reverse(
                "passkey_register_complete", request=request, format=format
            ),
            "passkey_login_begin": reverse("passkey_login_begin", request=request, format=format),
            "passkey_login_complete": reverse(
                "passkey_login_complete", request=request, format=format
            ),
            "passkey_detail_template": "/api/auth/passkey/{credential_id}/",
        }
    )
