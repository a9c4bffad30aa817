"""CRDT document hosting for real-time collaboration."""

from ticketsync.crdt.persistence import PersistenceManager, get_persistence_manager
from ticketsync.crdt.sync import SharedDocument

__all__ = ["PersistenceManager", "SharedDocument", "get_persistence_manager"]
