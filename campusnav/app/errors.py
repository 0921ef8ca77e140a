from typing import Optional


class RoutingError(Exception):
    """Base class for every failure raised by campusnav."""


class DataFetchFailure(RoutingError):
    """All candidate endpoints for a dataset or provider were exhausted."""

    def __init__(self, dataset: str, errors: Optional[list] = None):
        self.dataset = dataset
        self.errors = list(errors or [])
        detail = f"; last error: {self.errors[-1]}" if self.errors else ""
        super().__init__(f"All endpoints failed for {dataset}{detail}")


class OutdoorRouteFailure(DataFetchFailure):
    """The walking-directions provider returned no usable route."""


class UnresolvedEntity(RoutingError):
    """Unknown building name, unknown room key, or a room with no snapped node."""

    def __init__(self, kind: str, identifier: str, message: Optional[str] = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(message or f"{kind} not found: {identifier}")


class NoPathFound(RoutingError):
    """Both endpoints resolve but the graph does not connect them."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"No indoor path found from {source} to {target}")


class MalformedSourceData(RoutingError):
    """Survey data or a persisted artifact violates the expected shape."""
