class ScannerError(Exception):
    """Base class for per-candidate failures the pipeline converts into counters."""


class DiscoveryMiss(ScannerError):
    """A named candidate could not be matched to a live page element or capture."""


class RetrievalError(ScannerError):
    """Transport failure, timeout, bad status or undersized payload."""


class StoreWriteError(ScannerError):
    """Blob or metadata write failed."""


class ExistenceCheckError(ScannerError):
    """Store read failure during the skip check. Read as "absent", never counted as failed."""
