# backend/app/core/security.py
"""
Contexto del actor autenticado.

El login y la gestión de usuarios viven en otro servicio; aquí solo se
decodifica el Bearer JWT que ese servicio emite y se expone como
`ActorContext` para que los servicios comprueben la propiedad de cada
registro.

Claims usados:
- sub   -> user_id (obligatorio)
- name  -> display_name
- email -> email
- role  -> role ("user" por defecto)
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from pydantic import BaseModel

from backend.app.core.config import settings

security = HTTPBearer(auto_error=False)


class ActorContext(BaseModel):
    user_id: str
    display_name: str = ""
    email: Optional[str] = None
    role: str = "user"


def decode_actor_token(token: str) -> ActorContext:
    """
    Decodifica el JWT y construye el ActorContext.

    Lanza HTTP 401 si el token está caducado, es inválido o no trae 'sub'.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        # Señal clara para el cliente para hacer logout
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token_expired")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token sin 'sub'")

    return ActorContext(
        user_id=str(sub),
        display_name=payload.get("name") or "",
        email=payload.get("email"),
        role=payload.get("role") or "user",
    )


def get_actor(
    creds: HTTPAuthorizationCredentials = Security(security),
) -> ActorContext:
    """
    Dependencia FastAPI: obliga a enviar `Authorization: Bearer <token>`.
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Falta Bearer token")
    return decode_actor_token(creds.credentials)
