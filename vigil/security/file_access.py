"""File access policy — decides which paths must never have content exposed.

A denied path is still checksummed and tracked, but its content is never
read for diffing, never cached, and never logged.
"""

import posixpath
from dataclasses import dataclass
from typing import Protocol

from ..scanner.text_types import file_extension


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str = ""


class FileAccessChecker(Protocol):
    def is_file_accessible(self, file_path: str) -> AccessDecision: ...


BLOCKED_FILES = frozenset({
    "id_rsa", "id_rsa.pub", "id_dsa", "id_dsa.pub", "id_ecdsa", "id_ecdsa.pub",
    "id_ed25519", "id_ed25519.pub", "known_hosts", "authorized_keys",
    "passwd", "shadow", "group", "sudoers",
})

# Configuration files known to carry credentials
SECRET_BEARING_FILES = frozenset({
    "wp-config.php", "wp-config-local.php", ".env", ".env.local", ".env.production",
    ".env.development", ".env.staging", ".env.test", ".htpasswd", ".my.cnf",
    "auth.json", "credentials.php", "secrets.php", "api-keys.php", "database.php",
    "settings.py", "local_settings.py", "secrets.yml", "secrets.yaml",
})

BLOCKED_EXTENSIONS = frozenset({
    "key", "pem", "crt", "csr", "p12", "pfx", "cer", "der", "p7b", "p7c", "jks",
    "keystore", "ppk", "dump", "bak", "backup", "old", "orig", "save", "swp",
    "passwd", "shadow", "pwd", "psw", "kdbx",
})

BLOCKED_PATH_FRAGMENTS = (
    "/.git/", "/.svn/", "/.hg/", "/.ssh/", "/.aws/", "/.azure/", "/.gcloud/",
    "/.docker/", "/.kube/", "/keys/", "/certs/", "/private/", "/credentials/",
    "/secrets/", "/passwords/",
)

SENSITIVE_KEYWORDS = (
    "password", "secret", "credential", "token", "private", "certificate",
    "id_rsa", "id_dsa", "id_ecdsa", "id_ed25519",
)


def _normalize(file_path: str) -> str:
    path = file_path.replace("\\", "/")
    path = posixpath.normpath("/" + path.lstrip("/"))
    return path


class FileAccessPolicy:
    """Default policy: deny by basename, extension, location, then keyword."""

    def is_file_accessible(self, file_path: str) -> AccessDecision:
        path = _normalize(file_path)
        basename = posixpath.basename(path).lower()

        if basename in BLOCKED_FILES:
            return AccessDecision(False, "This file holds system or key material and cannot be accessed")
        if basename in SECRET_BEARING_FILES or basename.startswith(".env"):
            return AccessDecision(False, "This file contains credentials or secrets")
        if file_extension(basename) in BLOCKED_EXTENSIONS:
            return AccessDecision(False, "This file type cannot be accessed for security reasons")
        lowered = path.lower()
        if any(fragment in lowered for fragment in BLOCKED_PATH_FRAGMENTS):
            return AccessDecision(False, "Files in this directory cannot be accessed for security reasons")
        if any(keyword in basename for keyword in SENSITIVE_KEYWORDS):
            return AccessDecision(False, "File name suggests sensitive content")
        return AccessDecision(True)
