"""
API route modules for the rental order service.

This package contains subrouters for:
- Orders: creation, lifecycle transitions, status history
- Pricing: estimates, A2/PMG approval, pricing tiers
- Scanning: scan events, gate progress, truck photos
- Cron: scheduled event-date transitions and pickup reminders
- Notifications: delivery ledger and manual retry

Routers are included from rental_api.api.main (under the /api/v1 prefix).
"""
