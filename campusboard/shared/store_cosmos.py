# Cosmos DB backed document store

import logging
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import backoff
from azure.cosmos import CosmosClient, exceptions
from azure.cosmos.container import ContainerProxy
from azure.identity import DefaultAzureCredential

from campusboard.shared.config import Settings
from campusboard.shared.dates import to_iso
from campusboard.shared.logging_utils import info as log_info, error as log_error
from campusboard.shared.store import (
    CollectionQuery,
    DocumentStore,
    ErrorListener,
    RawDocument,
    SnapshotListener,
    Unsubscribe,
    is_collection_path,
    is_document_path,
    join_path,
    parent_of,
    split_path,
)
from campusboard.specs.common.errors import ConfigurationError, ResourceNotFoundError

# Fields the store adds to every item; stripped before documents reach callers.
_PATH_FIELDS = ("id", "path", "parentPath")
_SYSTEM_PREFIX = "_"


class RetryableCosmosError(Exception):
    """Indicates a Cosmos DB read that should be retried"""
    pass


def _raise_retryable(exc: exceptions.CosmosHttpResponseError, what: str) -> None:
    if exc.status_code in (429, 503):  # Too Many Requests or Service Unavailable
        raise RetryableCosmosError(f"Retriable error {what}: {exc}") from exc


class CosmosDocumentStore(DocumentStore):
    """One container per logical collection name.

    ``companies/A/news/x`` lives in the ``news`` container with
    ``parentPath = companies/A/news``; containers are partitioned on
    ``/parentPath`` so single-collection reads stay in one partition and
    collection-group queries fan out across partitions.
    """

    MAX_RETRIES = 3
    OPERATION_TIMEOUT = 10.0    # 10s
    PARTITION_KEY = "/parentPath"

    def __init__(self, settings: Settings, client: Optional[CosmosClient] = None):
        if client is None:
            client = self._connect(settings)
        self.settings = settings
        self.client = client
        self.database = client.get_database_client(settings.cosmos_database)
        self._containers: Dict[str, ContainerProxy] = {}
        self._lock = threading.Lock()

    @classmethod
    def _connect(cls, settings: Settings) -> CosmosClient:
        if not settings.cosmos_database:
            raise ConfigurationError("Missing Cosmos DB database name")
        if settings.cosmos_connection_string:
            return CosmosClient.from_connection_string(
                settings.cosmos_connection_string,
                retry_total=cls.MAX_RETRIES,
            )
        if settings.cosmos_endpoint:
            # Managed identity / developer login when no key is configured
            return CosmosClient(
                settings.cosmos_endpoint,
                credential=DefaultAzureCredential(),
                retry_total=cls.MAX_RETRIES,
            )
        raise ConfigurationError("Missing Cosmos DB connection string or endpoint")

    def container(self, collection_name: str) -> ContainerProxy:
        with self._lock:
            proxy = self._containers.get(collection_name)
            if proxy is None:
                proxy = self.database.get_container_client(self.settings.container_for(collection_name))
                self._containers[collection_name] = proxy
            return proxy

    def _container_for_path(self, path: str) -> ContainerProxy:
        return self.container(split_path(parent_of(path))[-1])

    @backoff.on_exception(
        backoff.expo,
        RetryableCosmosError,
        max_tries=MAX_RETRIES,
        max_time=OPERATION_TIMEOUT
    )
    def get(self, path: str) -> Optional[RawDocument]:
        path = self._document_path(path)
        container = self._container_for_path(path)
        try:
            item = container.read_item(item=split_path(path)[-1], partition_key=parent_of(path))
        except exceptions.CosmosResourceNotFoundError:
            logging.debug(f"Item not found: {path}")
            return None
        except exceptions.CosmosHttpResponseError as e:
            _raise_retryable(e, f"reading '{path}'")
            raise
        return self._to_raw(item)

    def add(self, collection_path: str, data: Dict[str, Any]) -> RawDocument:
        if not is_collection_path(collection_path):
            raise ValueError(f"'{collection_path}' is not a collection path")
        path = join_path(collection_path, uuid.uuid4().hex)
        container = self._container_for_path(path)
        item = container.create_item(body=self._body(path, data))
        log_info(path, "cosmos:add")
        return self._to_raw(item)

    def set(self, path: str, data: Dict[str, Any]) -> None:
        path = self._document_path(path)
        self._container_for_path(path).upsert_item(body=self._body(path, data))
        log_info(path, "cosmos:set")

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        path = self._document_path(path)
        container = self._container_for_path(path)
        operations = [
            {"op": "set", "path": f"/{name}", "value": self._value(value)}
            for name, value in fields.items()
        ]
        try:
            container.patch_item(
                item=split_path(path)[-1],
                partition_key=parent_of(path),
                patch_operations=operations,
            )
        except exceptions.CosmosResourceNotFoundError as e:
            raise ResourceNotFoundError("Document", path) from e
        log_info(path, "cosmos:update", fields=sorted(fields))

    def delete(self, path: str) -> None:
        path = self._document_path(path)
        start_time = time.time()
        try:
            self._container_for_path(path).delete_item(item=split_path(path)[-1], partition_key=parent_of(path))
            logging.debug(f"Successfully deleted item '{path}' in {time.time() - start_time:.2f}s")
        except exceptions.CosmosResourceNotFoundError:
            # Item doesn't exist, treat as success but log for tracking
            logging.info(f"Item '{path}' not found during delete - already deleted")

    @backoff.on_exception(
        backoff.expo,
        RetryableCosmosError,
        max_tries=MAX_RETRIES,
        max_time=OPERATION_TIMEOUT
    )
    def query(self, query: CollectionQuery) -> List[RawDocument]:
        return [self._to_raw(item) for item in self._query_items(query)]

    def _query_items(self, query: CollectionQuery) -> List[Dict[str, Any]]:
        container = self.container(query.collection_name)
        sql = "SELECT * FROM c"
        parameters: List[Dict[str, Any]] = []
        if not query.group:
            sql += " WHERE c.parentPath = @parent"
            parameters.append({"name": "@parent", "value": join_path(*split_path(query.collection))})
        if query.order_by:
            sql += f" ORDER BY c.{query.order_by} {'DESC' if query.descending else 'ASC'}"
        try:
            return list(container.query_items(
                query=sql,
                parameters=parameters,
                enable_cross_partition_query=True
            ))
        except exceptions.CosmosHttpResponseError as e:
            _raise_retryable(e, f"querying '{query.collection}'")
            raise

    def watch(
        self,
        query: CollectionQuery,
        listener: SnapshotListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        poller = _SnapshotPoller(self, query, listener, on_error, self.settings.poll_interval)
        poller.start()
        return poller.stop

    @staticmethod
    def _document_path(path: str) -> str:
        if not is_document_path(path):
            raise ValueError(f"'{path}' is not a document path")
        return join_path(*split_path(path))

    @classmethod
    def _value(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return to_iso(value)
        if isinstance(value, dict):
            return {k: cls._value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [cls._value(v) for v in value]
        return value

    @classmethod
    def _body(cls, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        body = {k: cls._value(v) for k, v in data.items() if k not in _PATH_FIELDS}
        body.update({"id": split_path(path)[-1], "path": path, "parentPath": parent_of(path)})
        return body

    @staticmethod
    def _to_raw(item: Dict[str, Any]) -> RawDocument:
        data = {
            k: v for k, v in item.items()
            if k not in _PATH_FIELDS and not k.startswith(_SYSTEM_PREFIX)
        }
        path = item.get("path") or join_path(item.get("parentPath", ""), item["id"])
        return RawDocument(id=item["id"], path=path, data=data)


class _SnapshotPoller(threading.Thread):
    """Re-runs a query on an interval and delivers it when any item changed.

    Change detection compares ``(path, _etag)`` across polls, so inserts,
    updates and deletes all produce a new snapshot.
    """

    def __init__(
        self,
        store: CosmosDocumentStore,
        query: CollectionQuery,
        listener: SnapshotListener,
        on_error: Optional[ErrorListener],
        interval: float,
    ):
        super().__init__(name=f"cosmos-watch-{query.collection}", daemon=True)
        self.store = store
        self.query = query
        self.listener = listener
        self.on_error = on_error
        self.interval = interval
        self._stopped = threading.Event()
        self._fingerprint: Optional[Tuple[Tuple[str, str], ...]] = None

    def stop(self) -> None:
        self._stopped.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=self.interval + 5.0)

    def run(self) -> None:
        while not self._stopped.is_set():
            try:
                self.poll_once()
            except Exception as exc:
                log_error(self.query.collection, "cosmos:watch_failed", error=str(exc))
                if self.on_error is not None:
                    self.on_error(exc)
            self._stopped.wait(self.interval)

    def poll_once(self) -> bool:
        items = self.store._query_items(self.query)
        fingerprint = tuple((item.get("path", item.get("id")), item.get("_etag", "")) for item in items)
        if fingerprint == self._fingerprint or self._stopped.is_set():
            return False
        self._fingerprint = fingerprint
        self.listener([self.store._to_raw(item) for item in items])
        return True
