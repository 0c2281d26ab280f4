"""
Enrichment error taxonomy. None of these is fatal to the worker.
"""


class EnrichmentError(Exception):
    """Base class for enrichment errors"""


class ProviderOpenFailure(EnrichmentError):
    """A GeoIP database file could not be opened; that provider stays absent"""

    def __init__(self, provider: str, path: str, cause: Exception):
        super().__init__(f"cannot open {provider} database {path}: {cause}")
        self.provider = provider
        self.path = path
        self.cause = cause


class LookupFailure(EnrichmentError):
    """A query against an open provider failed; that side of the event gets no location"""


class RefreshFailure(EnrichmentError):
    """The external database update program failed"""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output
