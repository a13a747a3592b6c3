"""
Owner Directory: resolves ``(ownerType, ownerId)`` to display name and logo.

One directory is built per process and handed to whatever needs owner data.
Entries are never evicted or refreshed; owners are treated as stable for the
session and a restart is the only way to pick up renamed owners.
"""
import threading
from typing import Dict, List, Optional

from campusboard.services.record_mapper import map_owner
from campusboard.shared.logging_utils import error as log_error, info as log_info
from campusboard.shared.store import CollectionQuery, DocumentStore, join_path
from campusboard.specs.common.enums import OwnerType
from campusboard.specs.common.errors import RemoteOperationError
from campusboard.specs.models.domain import UNKNOWN_OWNER_NAME, Article, Owner, owner_key


class OwnerDirectory:
    def __init__(self, store: DocumentStore):
        self._store = store
        self._cache: Dict[str, Owner] = {}
        self._lock = threading.Lock()

    def put(self, owner: Owner) -> None:
        with self._lock:
            self._cache[owner.key] = owner

    def _remember(self, owner: Owner) -> Owner:
        # first loaded wins, so earlier lookups and later ones agree
        with self._lock:
            return self._cache.setdefault(owner.key, owner)

    def cached(self, owner_type: OwnerType, owner_id: str) -> Optional[Owner]:
        with self._lock:
            return self._cache.get(owner_key(owner_type, owner_id))

    def get(self, owner_type: OwnerType, owner_id: str) -> Optional[Owner]:
        """Return the owner, reading through to the store on a miss.

        Unknown owners and lookup failures answer ``None``; only found owners
        are cached.
        """
        owner_type = OwnerType(owner_type)
        hit = self.cached(owner_type, owner_id)
        if hit is not None:
            return hit

        path = join_path(owner_type.value, owner_id)
        try:
            raw = self._store.get(path)
        except Exception as exc:
            log_error(path, "owners:lookup_failed", error=str(exc))
            return None
        if raw is None:
            return None

        return self._remember(map_owner(raw, owner_type))

    def list_all(self) -> List[Owner]:
        """Load every company and media-group owner, priming the cache."""
        owners: List[Owner] = []
        for owner_type in OwnerType:
            try:
                docs = self._store.query(CollectionQuery(owner_type.value))
            except Exception as exc:
                log_error(owner_type.value, "owners:list_failed", error=str(exc))
                raise RemoteOperationError("list owners", owner_type.value, exc) from exc
            for raw in docs:
                owners.append(self._remember(map_owner(raw, owner_type)))
        log_info(None, "owners:listed", count=len(owners))
        return owners

    def name_for(self, article: Article) -> str:
        owner = self.get(article.ownerType, article.ownerId)
        return owner.name if owner else UNKNOWN_OWNER_NAME

    def logo_for(self, article: Article) -> Optional[str]:
        owner = self.get(article.ownerType, article.ownerId)
        return owner.logo if owner else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
