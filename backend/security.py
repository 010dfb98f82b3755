from typing import Optional
from fastapi import Depends

from auth import get_current_user
from errors import AuthorizationDenied
from models import Profile, UserRole

STAFF_ROLES = {UserRole.ORGANIZER, UserRole.ADMIN}


def require_user(user: Profile = Depends(get_current_user)) -> Profile:
    return user


def require_role(*roles: UserRole):
    allowed = set(roles)

    def _checker(user: Profile = Depends(get_current_user)) -> Profile:
        if user.role not in allowed:
            raise AuthorizationDenied()
        return user

    return _checker


require_admin = require_role(UserRole.ADMIN)
require_staff = require_role(*STAFF_ROLES)


def is_staff(user: Optional[Profile]) -> bool:
    return bool(user and user.role in STAFF_ROLES)
