"""Abstract base class for authentication providers."""

from abc import ABC, abstractmethod


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    def get_access_token(self) -> str:
        """
        Get a valid access token (cached first, then from the token endpoint).

        Returns:
            Valid access token string

        Raises:
            AuthenticationError: If authentication fails
        """

    @abstractmethod
    def clear_cache(self) -> None:
        """Clear cached tokens."""
