"""
Dependencias de autenticación para FastAPI.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from app.modules.auth.schemas import AuthContext
from app.core.config import settings

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación desde el token JWT.
        El tenant_id del token debe coincidir con el header X-Company-ID.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
            user_id = UUID(payload["sub"])
            token_tenant = payload.get("tenant_id")
        except (jwt.PyJWTError, KeyError, ValueError, TypeError):
            raise credentials_exception

        header_tenant = getattr(request.state, "tenant_id", None)
        if not token_tenant or not header_tenant:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Se requiere seleccionar una empresa"
            )

        try:
            tenant_id = UUID(str(token_tenant))
        except ValueError:
            raise credentials_exception

        if str(tenant_id) != str(header_tenant):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes acceso a esta empresa"
            )

        return AuthContext(
            user_id=user_id,
            tenant_id=tenant_id,
            user_role=payload.get("role"),
            permissions=payload.get("permissions") or []
        )

    @staticmethod
    def require_permission(permission: str):
        """
        Dependencia para requerir un permiso específico.
        El rol owner tiene todos los permisos.
        """
        def permission_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.has_permission(permission):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere el permiso: {permission}"
                )
            return auth_context
        return permission_checker
