"""
Upstream Integration Clients

HTTP clients for the ERP (catalog and stock) and the retail POS, all sharing
the rate limit -> retry -> circuit breaker call stack.
"""

from .base_client import BaseIntegrationClient, map_status_error, map_transport_error
from .erp_client import ErpClient
from .erp_stock_client import ErpStockClient
from .retail_pos_client import RetailPosClient

__all__ = [
    "BaseIntegrationClient",
    "ErpClient",
    "ErpStockClient",
    "RetailPosClient",
    "map_status_error",
    "map_transport_error",
]
