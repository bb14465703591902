class SearchEngineError(Exception):
    """Raised when Solr rejects or fails a request."""


class SearchEngineUnavailable(SearchEngineError):
    """Raised when Solr cannot be reached at all."""

    message = "Could not connect to the search server"


class PackageNotFound(LookupError):
    """Raised when a package name does not exist in the relational store."""

    def __init__(self, name: str):
        super().__init__(f"Package {name} not found")
        self.name = name


class StoreWriteLocked(Exception):
    """Raised when a write to the relational store hits a transient lock conflict."""
