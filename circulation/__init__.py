"""Circulation - Core Application Package

This package contains the library circulation core:
- Records and derived issuance status (models.py)
- Error kinds (errors.py)
- Stock consistency rules (inventory.py)
- Member, book and issuance management (library.py)
- Data store clients and log relay (services/)
"""
