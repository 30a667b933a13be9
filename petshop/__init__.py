### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Package -
# Date: 10/19/2026
# Python: 3.11
####################

"""
PetShop Sync Package

Multi-tenant catalog and sales storage for the PetShop point-of-sale app.
All persistent state lives as JSON files in a shared GitHub repository,
with a local SQLite cache as fallback.
"""

__version__ = "1.0.0"
