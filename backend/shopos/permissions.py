"""
Role Permissions

WHY: Centralized permission definitions keep route checks consistent.
Roles are fixed per user record; superadmin (the shop owner) has everything.
"""

# =============================================================================
# PERMISSION CODES
# =============================================================================

PROCESS_SALES = "process_sales"
MANAGE_STOCK = "manage_stock"
MANAGE_USERS = "manage_users"
VIEW_REPORTS = "view_reports"
VIEW_FINANCIALS = "view_financials"
MANAGE_SETTINGS = "manage_settings"
MANAGE_DEBTORS = "manage_debtors"
APPROVE_CREDIT = "approve_credit"
MANAGE_GIFT_CARDS = "manage_gift_cards"

ALL_PERMISSIONS = frozenset({
    PROCESS_SALES,
    MANAGE_STOCK,
    MANAGE_USERS,
    VIEW_REPORTS,
    VIEW_FINANCIALS,
    MANAGE_SETTINGS,
    MANAGE_DEBTORS,
    APPROVE_CREDIT,
    MANAGE_GIFT_CARDS,
})


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

ROLE_PERMISSIONS = {
    "superadmin": ALL_PERMISSIONS,
    "admin": frozenset({
        MANAGE_USERS,  # Limited to non-superadmin users
        MANAGE_STOCK,
        PROCESS_SALES,
        VIEW_REPORTS,
        VIEW_FINANCIALS,
        MANAGE_SETTINGS,
        MANAGE_DEBTORS,
        APPROVE_CREDIT,
        MANAGE_GIFT_CARDS,
    }),
    "manager": frozenset({
        PROCESS_SALES,
        MANAGE_STOCK,
        VIEW_REPORTS,
        MANAGE_DEBTORS,
        APPROVE_CREDIT,
        MANAGE_GIFT_CARDS,
    }),
    "cashier": frozenset({
        PROCESS_SALES,
    }),
    "stock_clerk": frozenset({
        MANAGE_STOCK,
    }),
}

ROLES = tuple(ROLE_PERMISSIONS)


def has_permission(user: dict | None, permission: str) -> bool:
    if not user or user.get("status") == "inactive":
        return False
    return permission in ROLE_PERMISSIONS.get(user.get("role"), frozenset())
