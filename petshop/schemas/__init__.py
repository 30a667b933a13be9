### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Schemas Package -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Schemas Package

Pydantic models for the records stored as JSON in the remote repository:
- Company: tenant account with credentials and trial window
- Product: catalog entry
- Sale / SaleItem: completed sales
"""

from petshop.schemas.company import COMPANY_LIST, TRIAL_DAYS, Company
from petshop.schemas.product import MAX_STOCK, PRODUCT_LIST, Product
from petshop.schemas.sale import SALE_LIST, Sale, SaleItem

__all__ = [
    "Company",
    "COMPANY_LIST",
    "TRIAL_DAYS",
    "Product",
    "PRODUCT_LIST",
    "MAX_STOCK",
    "Sale",
    "SaleItem",
    "SALE_LIST",
]
