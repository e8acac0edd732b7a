"""
Simple Update Checker - GitHub Releases Provider
Reads the tag of the latest release of a GitHub repository.
"""

from dataclasses import dataclass
from typing import ClassVar, Mapping, Optional
import logging
import re

import requests

from core.errors import ProviderError
from .base import register_provider

logger = logging.getLogger(__name__)

USER_AGENT = "simple-update-checker"


@register_provider
@dataclass(frozen=True)
class GithubProvider:
    """Latest version of a program published as GitHub releases."""

    repository: str

    identifier: ClassVar[str] = "github"
    table: ClassVar[str] = "github_programs"
    columns: ClassVar[tuple[str, ...]] = ("repository",)

    GITHUB_API: ClassVar[str] = "https://api.github.com/repos/{repository}/releases/latest"
    TIMEOUT: ClassVar[int] = 10

    def __post_init__(self):
        # Accept full URLs and clone URLs as well as "owner/repo"
        repository = self.repository.strip().strip("/")
        match = re.search(r"github\.com[/:]([^/]+/[^/]+)", repository)
        if match:
            repository = match.group(1)
        if repository.endswith(".git"):
            repository = repository[: -len(".git")]
        parts = repository.split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid repository format: {self.repository} (expected owner/repo)")
        object.__setattr__(self, "repository", repository)

    def check_for_latest_version(self, access_token: Optional[str] = None) -> str:
        url = self.GITHUB_API.format(repository=self.repository)
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = requests.get(url, headers=headers, timeout=self.TIMEOUT)
        except requests.RequestException as e:
            raise ProviderError(
                f"Failed to fetch latest release of {self.repository}: {e}",
                provider=self.identifier,
            ) from e

        remaining = response.headers.get("X-RateLimit-Remaining", "?")
        logger.debug(f"GitHub API rate limit remaining: {remaining}")

        if not response.ok:
            if response.status_code == 404:
                reason = f"repository '{self.repository}' not found or has no releases"
            elif response.status_code in (403, 429):
                reason = "rate limit exceeded, consider configuring an access token"
            else:
                reason = f"status {response.status_code} {response.reason}"
            raise ProviderError(
                f"Request for latest release of {self.repository} failed: {reason}",
                provider=self.identifier,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                f"Invalid response for latest release of {self.repository}: {e}",
                provider=self.identifier,
            ) from e

        tag_name = data.get("tag_name") if isinstance(data, dict) else None
        if not isinstance(tag_name, str):
            raise ProviderError(
                "Response was success but did not contain tag_name",
                provider=self.identifier,
            )
        return tag_name

    def to_row(self) -> dict[str, str]:
        return {"repository": self.repository}

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "GithubProvider":
        return cls(repository=row["repository"])

    def describe(self) -> str:
        return self.repository
