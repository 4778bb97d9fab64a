"""
Role catalog: the single read path for role definitions.

Combines the dynamic role store with the built-in templates of
``vetguard.roles``.  Store reads are memoized per practice in a
``TTLCache`` owned by the catalog instance.

**Failure handling:** a store error never reaches the caller.  The catalog
logs it, serves the last cached value for that practice if there is one,
and otherwise returns an empty list so that lookups fall through to the
built-in templates.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Hashable, Optional

from vetguard.cache import TTLCache
from vetguard.models import Role
from vetguard.roles import get_template_role
from vetguard.stores import RoleStore

logger = logging.getLogger(__name__)

DEFAULT_ROLE_CACHE_TTL_SECONDS = 5 * 60

_SYSTEM_KEY = "system"


class RoleCatalog:
    """Cached view over a ``RoleStore`` with template fallback."""

    def __init__(
        self,
        store: Optional[RoleStore] = None,
        ttl_seconds: float = DEFAULT_ROLE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._cache: TTLCache[list[Role]] = TTLCache(ttl_seconds, clock=clock)

    @property
    def cache(self) -> TTLCache[list[Role]]:
        return self._cache

    @staticmethod
    def _cache_key(practice_id: Optional[int]) -> Hashable:
        return _SYSTEM_KEY if practice_id is None else practice_id

    def get_roles(self, practice_id: Optional[int] = None) -> list[Role]:
        """System roles plus the custom roles of ``practice_id``.

        Args:
            practice_id: Practice whose custom roles to include.  With None
                only system roles are returned.

        Returns:
            Roles from the store, possibly stale, or an empty list when the
            store is unreachable and nothing was cached.
        """
        if self._store is None:
            return []

        key = self._cache_key(practice_id)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        try:
            roles = list(self._store.get_roles(practice_id))
        except Exception as exc:
            stale = self._cache.get_stale(key)
            logger.warning(
                "RoleCatalog: role store failed for practice %s (%s); serving %s",
                practice_id,
                exc,
                "stale cache" if stale is not None else "built-in templates",
            )
            return list(stale) if stale is not None else []

        self._cache.set(key, roles)
        return list(roles)

    def get_role(
        self, name_or_id: str, practice_id: Optional[int] = None
    ) -> Optional[Role]:
        """Find a role by id or name; dynamic roles shadow templates."""
        roles = self.get_roles(practice_id)
        for role in roles:
            if role.id == name_or_id:
                return role
        for role in roles:
            if role.name == name_or_id:
                return role
        return get_template_role(name_or_id)

    def invalidate(self, practice_id: Optional[int] = None) -> None:
        """Drop cached roles for one practice, or for everything."""
        if practice_id is None:
            self._cache.invalidate()
        else:
            self._cache.invalidate(self._cache_key(practice_id))
        logger.info(
            "RoleCatalog: cache invalidated (%s)",
            "all practices" if practice_id is None else f"practice {practice_id}",
        )
