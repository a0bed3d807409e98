"""Include/exclude rules deciding which files take part in a scan."""

import mimetypes
import re
from typing import Iterable, Optional

from .text_types import TextClassifier, file_extension


EXECUTABLE_MIME_TYPES = frozenset({
    "application/octet-stream",
    "application/x-executable",
    "application/x-elf",
    "application/x-sharedlib",
    "application/x-mach-binary",
    "application/x-msdownload",
    "application/x-msdos-program",
    "application/x-dosexec",
    "application/vnd.microsoft.portable-executable",
    "application/java-archive",
    "application/wasm",
})

BINARY_SIGNATURES = (
    b"\x7fELF",           # ELF
    b"MZ",                # PE / DOS
    b"\xfe\xed\xfa\xce",  # Mach-O 32
    b"\xfe\xed\xfa\xcf",  # Mach-O 64
    b"\xce\xfa\xed\xfe",
    b"\xcf\xfa\xed\xfe",
    b"\xca\xfe\xba\xbe",  # Mach-O fat / Java class
    b"\x00asm",           # WebAssembly
)
SIGNATURE_PROBE_BYTES = 8


def glob_to_regex(pattern: str) -> re.Pattern:
    """``*`` matches any run of characters (including ``/``), ``?`` one character.

    Matching is case-sensitive and anchored at both ends.
    """
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.DOTALL)


class FileFilter:
    """Applies the extension allowlist, exclude globs, and binary sniffing.

    Paths are relative to the scan root with ``/`` separators. A pattern
    matches if it matches either the relative path or the root-anchored form
    (``/`` + relative path), so ``*/cache/*`` also covers a top-level
    ``cache/`` directory.
    """

    def __init__(
        self,
        extensions: Iterable[str],
        exclude_patterns: Iterable[str],
        text_classifier: TextClassifier,
    ):
        self._extensions = frozenset(
            e.strip().lstrip(".").lower() for e in extensions if e.strip()
        )
        patterns = [p for p in exclude_patterns if p]
        self._patterns = [glob_to_regex(p) for p in patterns]
        # Only a trailing-* pattern that matches "dir/" matches everything below it
        self._dir_patterns = [self._patterns[i] for i, p in enumerate(patterns) if p.endswith("*")]
        self._text = text_classifier

    def extension_allowed(self, rel_path: str) -> bool:
        # Empty allowlist: every extension is scanned
        if not self._extensions:
            return True
        return file_extension(rel_path) in self._extensions

    def is_excluded(self, rel_path: str) -> bool:
        anchored = "/" + rel_path
        return any(p.match(rel_path) or p.match(anchored) for p in self._patterns)

    def prunes_directory(self, rel_dir: str) -> bool:
        """True when every file beneath ``rel_dir`` would be excluded."""
        candidate = rel_dir + "/"
        return any(p.match(candidate) or p.match("/" + candidate) for p in self._dir_patterns)

    def matches_path(self, rel_path: str) -> bool:
        """Path-only rules; used to filter the comparison baseline."""
        return self.extension_allowed(rel_path) and not self.is_excluded(rel_path)

    def has_binary_signature(self, abs_path: str, rel_path: str) -> bool:
        """True for executable/binary payloads whose extension is not known-safe text."""
        if self._text.is_text(rel_path):
            return False
        mime, _ = mimetypes.guess_type(rel_path, strict=False)
        if mime in EXECUTABLE_MIME_TYPES:
            return True
        try:
            with open(abs_path, "rb") as f:
                head = f.read(SIGNATURE_PROBE_BYTES)
        except OSError:
            return False
        return head.startswith(BINARY_SIGNATURES)

    def skip_reason(self, abs_path: str, rel_path: str) -> Optional[str]:
        """Why a file should be left out of the scan, or None to include it."""
        if not self.extension_allowed(rel_path):
            return "extension not in scan list"
        if self.is_excluded(rel_path):
            return "matches exclude pattern"
        if self.has_binary_signature(abs_path, rel_path):
            return "binary or executable content"
        return None
