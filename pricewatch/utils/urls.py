"""Signed download links for locally stored reports."""

from __future__ import annotations

import os

from itsdangerous import BadData, URLSafeTimedSerializer

DOWNLOAD_PREFIX = "/downloads/"
DOWNLOAD_SALT = "report-download"
DEFAULT_EXPIRY = int(os.environ.get("SIGNED_URL_EXPIRY", 60 * 60 * 48))


def _serializer() -> URLSafeTimedSerializer:
    secret = os.environ.get("SIGNING_SECRET", "change-me")
    return URLSafeTimedSerializer(secret_key=secret, salt=DOWNLOAD_SALT)


def download_path(name: str) -> str:
    return f"{DOWNLOAD_PREFIX}{name}"


def sign_download(name: str, *, expires_in: int = DEFAULT_EXPIRY) -> str:
    token = _serializer().dumps(name)
    return f"{download_path(name)}?token={token}&expires={expires_in}"


def verify_download(token: str, name: str, *, max_age: int = DEFAULT_EXPIRY) -> bool:
    """True when ``token`` was issued for ``name`` and has not expired."""
    try:
        signed_name = _serializer().loads(token, max_age=max_age)
    except BadData:
        return False
    return signed_name == name
