"""
Partner backend layer: customers, cohorts, catalog items and charges.
"""
from app.domain.services.partner.base import ExternalDataGateway
from app.domain.services.partner.factory import get_partner_gateway

__all__ = [
    "ExternalDataGateway",
    "get_partner_gateway",
]
