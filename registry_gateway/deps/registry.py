"""Request dependencies for the registry routes.

Callers authenticate towards internal registries with their own token, sent
as `Authorization: Bearer <token>`. The gateway does not validate it; it is
forwarded to registries whose policy requires a token.
"""

from typing import Annotated, Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from registry_gateway.packages.registry.address import strip_auth_scheme
from registry_gateway.services.registry_service import RegistryService

logger = structlog.stdlib.get_logger(__name__)


def get_registry_service(request: Request) -> RegistryService:
    return request.app.state.registry_service


def get_credential(
    authorization: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    return strip_auth_scheme(authorization)


def get_required_credential(
    credential: Annotated[Optional[str], Depends(get_credential)],
) -> str:
    if not credential:
        logger.warning("Missing Authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credential


# Type aliases for dependency injection
RegistryServiceDep = Annotated[RegistryService, Depends(get_registry_service)]
Credential = Annotated[Optional[str], Depends(get_credential)]
RequiredCredential = Annotated[str, Depends(get_required_credential)]
