"""
Concrete implementations of the orchestrator's external collaborators.

- `RestJobClient`: the remote encoding service, over its v2 REST API.
- `HttpBlobStore`: blob storage, over its REST API.
- `LocalBlobStore`: blobs kept in a local directory.
"""
from .http_blob_store import HttpBlobStore
from .local_blob_store import LocalBlobStore
from .rest_job_client import RestJobClient

__all__ = ["HttpBlobStore", "LocalBlobStore", "RestJobClient"]
