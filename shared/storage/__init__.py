from .blob_store import BlobStore, HttpBlobStore, LocalBlobStore, build_blob_store

__all__ = ["BlobStore", "HttpBlobStore", "LocalBlobStore", "build_blob_store"]
