from folio.views.api_root import api_root
from folio.views.auth import password_login, auth_logout, auth_me
from folio.views.health import health_check
from folio.views.passkey import (
    passkey_register_begin,
    passkey_register_complete,
    passkey_login_begin,
    passkey_login_complete,
    passkey_list,
    passkey_detail,
    passkey_status,
    passkey_check_existing,
)

__all__ = [
    "api_root",
    "password_login",
    "auth_logout",
    "auth_me",
    "health_check",
    "passkey_register_begin",
    "passkey_register_complete",
    "passkey_login_begin",
    "passkey_login_complete",
    "passkey_list",
    "passkey_detail",
    "passkey_status",
    "passkey_check_existing",
]
