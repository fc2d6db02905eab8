"""Error taxonomy shared by the realtime pipeline and the static catalog."""


class DecodeError(ValueError):
    """Realtime payload could not be decoded as a GTFS-RT FeedMessage."""


class UpstreamError(Exception):
    """An upstream HTTP fetch failed after all retries."""

    def __init__(self, label: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{label}: {message}")
        self.label = label
        self.status_code = status_code


class StaleDataWarning(UserWarning):
    """Static extract refresh failed; previously cached data stays in use."""


class ConfigurationError(RuntimeError):
    """Required configuration is missing."""
