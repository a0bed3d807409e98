"""Exception hierarchy for the scan, cache, and retention engine."""


class VigilError(Exception):
    """Base class for all engine errors."""


class ChecksumError(VigilError):
    """A checksum could not be produced for a file."""


class ChecksumSkipped(ChecksumError):
    """Soft skip: the file is not eligible for checksumming right now.

    Callers omit the file from the scan and continue with the next one.
    """

    def __init__(self, reason: str, path: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.path = path


class CacheIntegrityError(VigilError):
    """A cache payload failed decompression, decryption, or verification."""


class ScanError(VigilError):
    """A failure that is fatal to the whole scan run."""


class ScanRootError(ScanError):
    """The scan root is missing or cannot be enumerated."""


class ScanPersistenceError(ScanError):
    """Writing the ScanResult or its FileRecords failed."""


class ScanNotFoundError(VigilError):
    def __init__(self, scan_id: int):
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


class ScanStateError(VigilError):
    """The requested lifecycle transition is not allowed for the scan."""


class ScanInProgressError(VigilError):
    """Another scan is already running against the target tree."""
