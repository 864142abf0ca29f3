"""
安全相关功能
JWT 令牌的签发与解析，以及从 Authorization 头构造当前操作者的 FastAPI 依赖

令牌声明：
- sub: 主体ID（用户ID、餐厅ID或管理员标识）
- role: user / restaurant / admin
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .exceptions import AuthenticationError, PermissionDeniedError
from ..config.settings import settings
from ..models.order import Actor, ActorRole


class SecurityManager:
    """安全管理器"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None,
                 expire_hours: Optional[int] = None):
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expire_hours = expire_hours if expire_hours is not None else settings.jwt_expire_hours

    def create_jwt_token(self, subject_id: str, role: ActorRole,
                         additional_claims: Dict[str, Any] = None) -> str:
        """创建JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "role": ActorRole(role).value,
            "exp": now + timedelta(hours=self.expire_hours),
            "iat": now,
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        """解码JWT token"""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

    def get_actor_from_token(self, token: str) -> Actor:
        """从token中构造操作者"""
        payload = self.decode_jwt_token(token)
        subject_id = payload.get("sub")
        if not subject_id:
            raise AuthenticationError("Token missing sub")
        try:
            role = ActorRole(payload.get("role"))
        except ValueError:
            raise AuthenticationError("Token has unknown role", details={"role": payload.get("role")})
        return Actor(role=role, subject_id=str(subject_id))


# 全局安全管理器实例
security_manager = SecurityManager()

_bearer = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)
) -> Actor:
    """从Authorization header中解析当前操作者"""
    if credentials is None:
        raise AuthenticationError("缺少认证信息")
    return security_manager.get_actor_from_token(credentials.credentials)


def require_role(*roles: ActorRole):
    """限定角色的依赖工厂，管理员总是放行"""
    allowed = set(roles)

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.is_admin or actor.role in allowed:
            return actor
        raise PermissionDeniedError(
            f"{actor.role.value} 无权执行该操作",
            details={"role": actor.role.value, "allowed_roles": sorted(r.value for r in allowed)},
        )

    return dependency
