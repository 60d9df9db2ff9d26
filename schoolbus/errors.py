class RoutingError(Exception):
    """Base class for every error raised while planning a bus route."""


class InsufficientNodes(RoutingError, ValueError):
    """Fewer than two nodes: there is no tour to compute."""


class DimensionMismatch(RoutingError, ValueError):
    """A cost matrix does not match the node list it is meant for."""


class InvalidParameter(RoutingError, ValueError):
    """An optimization parameter lies outside its documented domain."""


class RoutingServiceError(RoutingError):
    """A routing backend (OSRM, OSM road graph) could not answer a request."""
