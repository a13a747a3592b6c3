import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from azure.core.exceptions import ResourceExistsError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient, ContentSettings

from campusboard.shared.config import Settings
from campusboard.shared.logging_utils import info as log_info
from campusboard.specs.common.errors import ConfigurationError


class BlobStore(ABC):
    @abstractmethod
    def upload(self, blob_name: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Upload bytes and return a durable fetch URL."""


class AzureBlobStore(BlobStore):
    """Uploads into one public-read container. Creates the container if missing."""

    def __init__(self, settings: Settings, service: Optional[BlobServiceClient] = None):
        if service is None:
            if settings.blob_connection_string:
                service = BlobServiceClient.from_connection_string(settings.blob_connection_string)
            elif settings.blob_account_url:
                service = BlobServiceClient(settings.blob_account_url, credential=DefaultAzureCredential())
            else:
                raise ConfigurationError("PUBLIC_BLOB_CONNECTION_STRING is required for blob uploads")
        self.service = service
        self.container_name = settings.blob_container
        self._container_ready = False

    def _container(self):
        container_client = self.service.get_container_client(self.container_name)
        if not self._container_ready:
            try:
                container_client.create_container(public_access="blob")
            except ResourceExistsError:
                pass
            self._container_ready = True
        return container_client

    def upload(self, blob_name: str, data: bytes, content_type: Optional[str] = None) -> str:
        blob = self._container().get_blob_client(blob_name)
        kwargs = {}
        if content_type:
            kwargs["content_settings"] = ContentSettings(content_type=content_type)
        blob.upload_blob(data, overwrite=True, **kwargs)
        log_info(blob_name, "blob:uploaded", size=len(data), contentType=content_type)
        return blob.url


class MemoryBlobStore(BlobStore):
    def __init__(self, base_url: str = "memory://thumbnails"):
        self.base_url = base_url.rstrip("/")
        self.blobs: Dict[str, Tuple[bytes, Optional[str]]] = {}
        self._lock = threading.Lock()

    def upload(self, blob_name: str, data: bytes, content_type: Optional[str] = None) -> str:
        with self._lock:
            self.blobs[blob_name] = (bytes(data), content_type)
        return f"{self.base_url}/{blob_name}"


def create_blob_store(settings: Settings) -> BlobStore:
    if settings.blob_connection_string or settings.blob_account_url:
        return AzureBlobStore(settings)
    return MemoryBlobStore()
