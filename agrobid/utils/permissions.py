"""
Role-based access control utilities
"""
from fastapi import HTTPException
from agrobid.db.models import User

# Role hierarchy
ROLES = {
    "admin": 100,   # Full system access, runs settlement jobs
    "farmer": 40,   # Lists and cancels own sales
    "buyer": 20     # Places bids
}


def has_role(user: User, required_role: str) -> bool:
    """Check if user has required role or higher"""
    user_level = ROLES.get(user.role, 0)
    required_level = ROLES.get(required_role, 0)
    return user_level >= required_level


def require_role(user: User, required_role: str):
    """Raise exception if user doesn't have required role"""
    if not has_role(user, required_role):
        raise HTTPException(
            status_code=403,
            detail=f"Requires {required_role} role or higher"
        )


def is_admin(user: User) -> bool:
    """Check if user is admin"""
    return user.role == "admin"


def can_place_bid(user: User) -> bool:
    """Only buyers bid; farmers and admins are never bidders"""
    return user.role == "buyer"
