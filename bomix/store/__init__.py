"""Series database storage: the SQLite document store and the BOM model on top of it."""

from .document_store import DocumentStore
from .model import BomModel, normalize_data

__all__ = ["DocumentStore", "BomModel", "normalize_data"]
