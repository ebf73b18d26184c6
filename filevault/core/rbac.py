from fastapi import Depends, HTTPException, status

from filevault.core.deps import get_current_user
from filevault.models.user import Role, User


def require_role(required: Role):
    def _dep(user: User = Depends(get_current_user)) -> User:
        if not user.role.allows(required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough rights")
        return user
    return _dep


require_user = require_role(Role.USER)
require_admin = require_role(Role.ADMIN)
