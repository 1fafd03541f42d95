"""
PostgreSQL-backed store for orders and their production entries.
"""

from store.models import Order, ProductionEntry
from store.client import StoreClient, VersionConflict
from store.server import OrderStoreServer
