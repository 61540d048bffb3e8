"""
Error kinds raised by the route safety engine and its upstream collaborators.

Engine errors are local precondition violations on input data. They are never
retried; the caller decides whether to re-fetch upstream data or report the
problem to the user.

Collaborator errors describe why routes, hazard zones or locations could not be
obtained, so the HTTP layer never confuses "no data" with "no risk".
"""


class RouteSafetyError(Exception):
    """Base class for every error raised by this backend."""


# ========== Engine precondition errors ==========

class InvalidCoordinate(RouteSafetyError, ValueError):
    """Latitude/longitude is NaN, infinite, non-numeric or out of range."""


class DegenerateRoute(RouteSafetyError, ValueError):
    """A polyline has fewer than two points."""


class EmptyPolyline(DegenerateRoute):
    """A candidate route handed to the scorer has fewer than two points."""


class InvalidHazardZone(RouteSafetyError, ValueError):
    """Hazard zone has a non-positive radius, bad confidence or unknown severity."""


class NoRoutesAvailable(RouteSafetyError, ValueError):
    """Route selection was asked to choose from an empty list."""


class EvaluationCancelled(RouteSafetyError):
    """The caller abandoned an evaluation before every route was scored."""


# ========== Upstream collaborator errors ==========

class MissingCredentialsError(RouteSafetyError):
    """An external API key or token is not configured."""


class UpstreamServiceError(RouteSafetyError):
    """An external API failed (network error, bad status, unparseable body)."""


class RoutingProviderError(UpstreamServiceError):
    """The routing provider request failed."""


class NoRoutesFound(RouteSafetyError):
    """The routing provider answered but returned no usable routes."""


class WeatherServiceError(UpstreamServiceError):
    """Weather observations could not be fetched."""


class HazardDataUnavailable(RouteSafetyError):
    """Hazard zones could not be produced for the requested locations."""


class GeocodingError(UpstreamServiceError):
    """The geocoding provider request failed."""


class LocationNotFound(RouteSafetyError):
    """The geocoding provider found no match for a place name."""
