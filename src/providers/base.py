"""
Simple Update Checker - Version Provider Base
Protocol every version provider implements and the registry of provider kinds.
"""

from typing import ClassVar, Mapping, Optional, Protocol, runtime_checkable
import logging

from core.errors import ProviderError

logger = logging.getLogger(__name__)


@runtime_checkable
class VersionProvider(Protocol):
    """
    A source of "latest version" information for a single program.

    Provider kinds are plain classes that satisfy this protocol and are
    registered with :func:`register_provider`. Each kind stores its
    settings in its own extension table, described by ``table`` and
    ``columns``, so the store can persist any kind without knowing it.
    """

    identifier: ClassVar[str]
    table: ClassVar[str]
    columns: ClassVar[tuple[str, ...]]

    def check_for_latest_version(self, access_token: Optional[str] = None) -> str:
        """
        Look up the latest published version.

        Args:
            access_token: Optional credential for rate-limited APIs.

        Returns:
            The version string exactly as published.

        Raises:
            ProviderError: If the lookup failed or the response was malformed.
        """
        ...

    def to_row(self) -> dict[str, str]:
        """Values for the extension table columns."""
        ...

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "VersionProvider":
        ...

    def describe(self) -> str:
        """Short human readable description, e.g. the repository."""
        ...


_registry: dict[str, type] = {}


def register_provider(provider_cls: type) -> type:
    """
    Register a provider kind. Usable as a class decorator.

    Raises:
        ValueError: If another kind already uses the same identifier.
    """
    identifier = provider_cls.identifier
    existing = _registry.get(identifier)
    if existing is not None and existing is not provider_cls:
        raise ValueError(f"Provider '{identifier}' is already registered by {existing.__name__}")
    _registry[identifier] = provider_cls
    logger.debug(f"Registered provider kind '{identifier}'")
    return provider_cls


def unregister_provider(identifier: str) -> None:
    _registry.pop(identifier, None)


def get_provider_class(identifier: str) -> type:
    """
    Get the provider class registered under ``identifier``.

    Raises:
        ProviderError: If no such provider kind exists.
    """
    try:
        return _registry[identifier]
    except KeyError:
        raise ProviderError(f"Unknown provider type: {identifier}", provider=identifier) from None


def registered_providers() -> list[type]:
    """All registered provider kinds, sorted by identifier."""
    return [_registry[key] for key in sorted(_registry)]


def provider_from_row(identifier: str, row: Mapping[str, str]) -> VersionProvider:
    """Rebuild a provider from its identifier and extension table row."""
    return get_provider_class(identifier).from_row(row)
