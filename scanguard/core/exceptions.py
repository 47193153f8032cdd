"""
Domain exceptions.

All of them derive from ValueError so callers that only care about
"bad input or bad state" can keep catching ValueError.
"""


class ScanNotFoundError(ValueError):
    """Raised when a scan id does not exist."""

    def __init__(self, scan_id: str):
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


class InvalidTransitionError(ValueError):
    """Raised when a pipeline status/progress change breaks the state machine."""


class ScanClosedError(ValueError):
    """Raised when result records are written to a scan that already reached a terminal status."""


class ImmutableRecordError(ValueError):
    """Raised when a flush would modify a write-once result record."""


class RepositoryFetchError(ValueError):
    """Raised when repository contents cannot be fetched."""


class CveLookupError(ValueError):
    """Raised when the CVE upstream cannot be reached or returns garbage."""


class AnalyzerError(RuntimeError):
    """Raised when the external analysis engine fails (rate limits, credits, bad payloads)."""


class VulnerabilityNotFoundError(ValueError):
    """Raised when a vulnerability id does not exist."""

    def __init__(self, vulnerability_id: int):
        super().__init__(f"Vulnerability {vulnerability_id} not found")
        self.vulnerability_id = vulnerability_id


class CveNotFoundError(ValueError):
    """Raised when the CVE upstream has no record for an id."""

    def __init__(self, cve_id: str):
        super().__init__(f"CVE {cve_id} not found")
        self.cve_id = cve_id
