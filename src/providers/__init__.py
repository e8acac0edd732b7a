"""
Simple Update Checker - Version Providers Package
"""

from providers.base import (
    VersionProvider,
    register_provider,
    unregister_provider,
    get_provider_class,
    registered_providers,
    provider_from_row,
)
from providers.github import GithubProvider

__all__ = [
    "VersionProvider",
    "register_provider",
    "unregister_provider",
    "get_provider_class",
    "registered_providers",
    "provider_from_row",
    "GithubProvider",
]
