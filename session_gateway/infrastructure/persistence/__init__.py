from .metadata_store import FileMetadataStore

__all__ = ['FileMetadataStore']
