from fastapi import APIRouter, Depends

from puremeds.core.auth import ROLE_INVENTORY_MANAGER, AuthUser, get_current_user
from puremeds.core.config import settings

router = APIRouter()


@router.get('/whoami')
def whoami(current_user: AuthUser = Depends(get_current_user)) -> dict:
    return {
        'auth_enabled': settings.auth_enabled,
        'user': current_user.model_dump(),
        'can_register_products': current_user.has_any_role(ROLE_INVENTORY_MANAGER),
    }
