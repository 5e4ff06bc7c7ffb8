"""Issue tracker configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import optional_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig

GITHUB_API_URL = "https://api.github.com"
GITHUB_TIMEOUT_SECONDS = 30.0
GITHUB_API_VERSION = "2022-11-28"

OWNER_VAR = "TERMREQUESTER_GITHUB_OWNER"
REPOSITORY_VAR = "TERMREQUESTER_GITHUB_REPOSITORY"
TOKEN_VAR = "TERMREQUESTER_GITHUB_TOKEN"
API_URL_VAR = "TERMREQUESTER_GITHUB_API_URL"


def default_github_resilience(base_url: str = GITHUB_API_URL) -> ResilienceConfig:
    return ResilienceConfig(
        name="github",
        base_url=base_url,
        timeout_seconds=GITHUB_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        default_headers={
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        },
    )


@dataclass(frozen=True)
class TrackerConfig:
    """Holds the repository the tracker client files tickets against."""

    owner: str
    repository: str
    token: str
    resilience: ResilienceConfig = field(default_factory=default_github_resilience)

    def __post_init__(self) -> None:
        for label, value in (("owner", self.owner), ("repository", self.repository)):
            if not value or "/" in value:
                raise ConfigurationError(f"Invalid tracker {label}: {value!r}")

    @property
    def repository_path(self) -> str:
        return f"{self.owner}/{self.repository}"


def get_tracker_config(*, resilience: ResilienceConfig | None = None) -> TrackerConfig:
    values = require_env_vars((OWNER_VAR, REPOSITORY_VAR, TOKEN_VAR))
    api_url = optional_env_var(API_URL_VAR, GITHUB_API_URL) or GITHUB_API_URL
    return TrackerConfig(
        owner=values[OWNER_VAR],
        repository=values[REPOSITORY_VAR],
        token=values[TOKEN_VAR],
        resilience=resilience or default_github_resilience(api_url),
    )
