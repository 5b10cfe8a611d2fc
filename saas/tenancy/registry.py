"""
Schema creator registry.

A schema creator is an idempotent coroutine that provisions the tables one
capability needs inside a tenant schema. The registry is filled once at
startup, frozen, and then handed to the TenantRouter by reference.
"""

import logging
from collections.abc import Awaitable, Callable, Iterator

from sqlalchemy.ext.asyncio import AsyncSession

from saas.exceptions import InvalidArgumentError, ResourceNotFoundError

logger = logging.getLogger(__name__)

SchemaCreator = Callable[[AsyncSession], Awaitable[None]]


class SchemaCreatorRegistry:
    def __init__(self) -> None:
        self._creators: dict[str, SchemaCreator] = {}
        self._frozen = False

    def register(self, name: str, creator: SchemaCreator) -> None:
        """
        Register *creator* under the capability *name*.

        Raises:
            InvalidArgumentError: empty or duplicate name, or registry already frozen
        """
        if self._frozen:
            raise InvalidArgumentError(
                f"Cannot register schema creator '{name}': registry is frozen", field="name"
            )
        if not name:
            raise InvalidArgumentError("Schema creator name is required", field="name")
        if name in self._creators:
            raise InvalidArgumentError(f"Schema creator '{name}' is already registered", field="name")
        self._creators[name] = creator
        logger.debug("Registered schema creator: %s", name)

    def get(self, name: str) -> SchemaCreator:
        try:
            return self._creators[name]
        except KeyError:
            raise ResourceNotFoundError("Schema creator", name) from None

    def names(self) -> list[str]:
        """Capability names in registration order."""
        return list(self._creators)

    def freeze(self) -> "SchemaCreatorRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._creators

    def __iter__(self) -> Iterator[str]:
        return iter(self._creators)

    def __len__(self) -> int:
        return len(self._creators)
