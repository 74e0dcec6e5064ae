"""
Typed errors for TLE acquisition and orbit propagation.

Every acquisition failure derives from ``CelesTrakError`` so callers can
separate catalog problems from unexpected failures, and each error renders a
message suitable for showing to a user.
"""

# SGP4 error code meanings
SGP4_ERROR_CODES = {
    0: "No error",
    1: "Mean eccentricity < 0.0 or > 1.0",
    2: "Mean motion < 0.0",
    3: "Perturbed eccentricity < 0.0 or > 1.0",
    4: "Semi-latus rectum < 0.0",
    5: "Satellite has decayed",
    6: "Satellite has decayed (low altitude)",
}


class CelesTrakError(Exception):
    """Base class for catalog fetch and parse failures."""

    message = "The TLE catalog request failed."

    def __str__(self):
        return self.message


class InvalidURL(CelesTrakError):
    message = "Could not build a valid catalog URL for the query."


class NonHTTPResponse(CelesTrakError):
    message = "The catalog returned a response without an HTTP status."


class BadStatus(CelesTrakError):
    def __init__(self, status_code: int):
        super().__init__(status_code)
        self.status_code = status_code

    @property
    def message(self) -> str:
        if self.status_code == 403:
            return "The catalog refused the request (HTTP 403). Requests are paused for a while."
        return f"The catalog returned an unexpected status (HTTP {self.status_code})."

    def __eq__(self, other):
        return isinstance(other, BadStatus) and other.status_code == self.status_code

    def __hash__(self):
        return hash(("BadStatus", self.status_code))


class EmptyBody(CelesTrakError):
    message = "The catalog returned an empty response."


class MissingTLELines(CelesTrakError):
    message = "The catalog response did not include any TLE lines."


class NotModified(CelesTrakError):
    message = "The catalog reported no changes, but no cached data is available."


class MalformedTLE(CelesTrakError):
    def __init__(self, at_line: int, context: str):
        super().__init__(at_line, context)
        self.at_line = at_line
        self.context = context

    @property
    def message(self) -> str:
        return f"Malformed TLE data at line {self.at_line}: {self.context}"


class PropagationError(RuntimeError):
    """Raised when SGP4 cannot produce a state vector for the requested time."""

    def __init__(self, satellite_id, error_code: int, detail: str = ""):
        self.satellite_id = satellite_id
        self.error_code = error_code
        description = SGP4_ERROR_CODES.get(error_code, f"Unknown error code {error_code}")
        text = f"SGP4 error {error_code} for satellite {satellite_id}: {description}"
        if detail:
            text = f"{text} ({detail})"
        super().__init__(text)
