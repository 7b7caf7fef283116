"""Central datastore adapters."""

from .rest_datastore import RestDatastore

__all__ = ["RestDatastore"]
