"""DRF serializers for the admin authentication endpoints.

Ceremony payloads (``credential``) are kept as plain dicts here; the passkey
core validates their binary content and reports failures as ceremony
rejections.
"""

from rest_framework import serializers

USERNAME_REGEX = r"^[\w.@+-]{1,150}$"
MAX_PASSKEY_NAME_LENGTH = 50


class PasswordLoginSerializer(serializers.Serializer):
    """Serializer for the password login fallback"""

    username = serializers.CharField(max_length=150, trim_whitespace=True)
    password = serializers.CharField(max_length=1024, trim_whitespace=False)


class PasskeyRegisterCompleteSerializer(serializers.Serializer):
    """Serializer for a registration (attestation) response"""

    credential = serializers.DictField()
    name = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=MAX_PASSKEY_NAME_LENGTH,
    )


class PasskeyLoginBeginSerializer(serializers.Serializer):
    """Serializer for starting a passkey login"""

    username = serializers.RegexField(USERNAME_REGEX, required=False)


class PasskeyLoginCompleteSerializer(serializers.Serializer):
    """Serializer for an authentication (assertion) response"""

    username = serializers.RegexField(USERNAME_REGEX, required=False)
    credential = serializers.DictField()


class PasskeyRenameSerializer(serializers.Serializer):
    """Serializer for renaming a registered passkey"""

    name = serializers.CharField(
        min_length=1,
        max_length=MAX_PASSKEY_NAME_LENGTH,
        trim_whitespace=True,
        error_messages={
            "blank": "Name must be 1 to 50 characters",
            "min_length": "Name must be 1 to 50 characters",
            "max_length": "Name must be 1 to 50 characters",
        },
    )


class CheckExistingSerializer(serializers.Serializer):
    """Serializer for the check-existing query string"""

    username = serializers.RegexField(USERNAME_REGEX, required=False)
