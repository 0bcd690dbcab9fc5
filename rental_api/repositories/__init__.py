"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for orders, pricing tiers, scan
events and the notification ledger. Soft-deleted orders are filtered out of
every active query here, so services never see them.
"""
