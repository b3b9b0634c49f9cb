from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_actor_id
from app.core.permissions import Actor, ActorRole, PermissionCode, has_permission
from app.core.security import decode_token
from app.db.session import get_db
from app.services.storage.adapter import StorageAdapter
from app.services.storage.service import get_storage_adapter


bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


def get_storage() -> StorageAdapter:
    return get_storage_adapter()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_token(credentials.credentials, expected_type="access")
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        role = ActorRole(payload.get("role"))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role") from exc

    set_actor_id(str(subject))
    return Actor(id=str(subject), role=role)


def require_permission(permission_code: PermissionCode | str):
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not has_permission(actor.role, permission_code):
            target = (
                permission_code.value
                if isinstance(permission_code, PermissionCode)
                else str(permission_code)
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {target}",
            )
        return actor

    return dependency
