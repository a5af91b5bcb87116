from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView

from folio.views import (
    api_root,
    auth_logout,
    auth_me,
    health_check,
    passkey_check_existing,
    passkey_detail,
    passkey_list,
    passkey_login_begin,
    passkey_login_complete,
    passkey_register_begin,
    passkey_register_complete,
    passkey_status,
    password_login,
)

auth_patterns = [
    path("login/", password_login, name="auth_login"),
    path("logout/", auth_logout, name="auth_logout"),
    path("me/", auth_me, name="auth_me"),
    path("passkey/", passkey_list, name="passkey_list"),
    path("passkey/status/", passkey_status, name="passkey_status"),
    path("passkey/check-existing/", passkey_check_existing, name="passkey_check_existing"),
    path("passkey/register/begin/", passkey_register_begin, name="passkey_register_begin"),
    path("passkey/register/complete/", passkey_register_complete, name="passkey_register_complete"),
    path("passkey/login/begin/", passkey_login_begin, name="passkey_login_begin"),
    path("passkey/login/complete/", passkey_login_complete, name="passkey_login_complete"),
    path("passkey/<str:credential_id>/", passkey_detail, name="passkey_detail"),
]

urlpatterns = [
    path("api/", api_root, name="api_root"),
    path("api/health/", health_check, name="health_check"),
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/auth/", include(auth_patterns)),
]
