"""Identity provider interface consumed by the guard."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Identity:
    """An authenticated user as reported by the identity provider."""
    id: str
    email: str
    name: Optional[str] = None


class IdentityProvider(ABC):
    """Abstract base class for the external authentication service.

    Implementations may raise any exception from ``login`` or ``register``;
    the guard treats those as opaque upstream failures.
    """

    @abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """Return the authenticated identity, or None when signed out."""
        pass

    @abstractmethod
    async def login(self, email: str, password: str) -> Optional[Identity]:
        """Authenticate with email and password."""
        pass

    @abstractmethod
    async def register(self, name: str, email: str, password: str) -> Optional[Identity]:
        """Create an account."""
        pass
