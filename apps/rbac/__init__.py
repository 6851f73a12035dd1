"""
RBAC (Role-Based Access Control) application.

Provides the farmer registry's authorization engine:
- Static permission catalog and system-role tiers
- Admin-defined custom roles and their assignments
- Effective permission resolution with cache invalidation
- Authorization gate used by every protected endpoint
- Audit logging of RBAC changes
"""
