"""Admin routes - CORS origin management"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from typing import List

from app.core.database import get_db
from app.core.exceptions import ResourceNotFoundError
from app.schemas.origin import (
    OriginCreate,
    OriginUpdate,
    OriginRemove,
    OriginResponse,
    CorsStatsResponse,
    OriginMutationResponse,
    CorsMessageResponse,
)
from app.services.audit_service import AuditAction, audit_service
from app.services.origin_cache import OriginService
from app.api.deps import get_current_admin_user, get_origin_service, client_ip, user_agent
from app.models.user import User

router = APIRouter()


def _audit(db: Session, request: Request, admin: User, action: str, metadata: dict) -> None:
    audit_service.log_event(
        db,
        user_id=admin.id,
        action=action,
        resource="CORS",
        ip_address=client_ip(request),
        user_agent=user_agent(request),
        metadata=metadata,
    )


def _stats(service: OriginService) -> CorsStatsResponse:
    return CorsStatsResponse(**service.cache.get_stats())


@router.get("/cors", response_model=CorsStatsResponse)
def get_cors_stats(
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service)
):
    """Current contents of the in-memory CORS cache"""
    return _stats(service)


@router.post("/cors/refresh", response_model=CorsMessageResponse)
def refresh_cors_cache(
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    """Force a reload of the CORS cache from the database"""
    service.cache.refresh(db)
    stats = _stats(service)
    _audit(db, request, current_user, AuditAction.CORS_CACHE_REFRESHED, {"total_origins": stats.total_origins})
    return CorsMessageResponse(message="CORS cache refreshed successfully", stats=stats)


@router.get("/origins", response_model=List[OriginResponse])
def list_origins(
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    return service.list_origins(db)


@router.post("/origins", response_model=OriginMutationResponse, status_code=status.HTTP_201_CREATED)
def create_origin(
    data: OriginCreate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    """
    Add an allowed origin

    Args:
        data: Origin URL and optional description
        current_user: Current admin user
        service: Origin service bound to the app's cache
        db: Database session

    Returns:
        Created origin and the refreshed cache stats
    """
    origin = service.add_origin(db, data.url, data.description)
    _audit(db, request, current_user, AuditAction.ORIGIN_CREATED, {"origin_id": origin.id, "url": origin.url})
    return OriginMutationResponse(
        message="Origin added successfully",
        data=OriginResponse.model_validate(origin),
        stats=_stats(service),
    )


@router.post("/origins/deactivate", response_model=CorsMessageResponse)
def deactivate_origin_by_url(
    data: OriginRemove,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    """Stop allowing an origin without deleting its record"""
    if not service.remove_origin(db, data.url):
        raise ResourceNotFoundError("Origin")
    _audit(db, request, current_user, AuditAction.ORIGIN_DEACTIVATED, {"url": data.url})
    return CorsMessageResponse(message="Origin deactivated successfully", stats=_stats(service))


@router.get("/origins/{origin_id}", response_model=OriginResponse)
def get_origin(
    origin_id: int,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    return service.get_origin(db, origin_id)


@router.put("/origins/{origin_id}", response_model=OriginMutationResponse)
def update_origin(
    origin_id: int,
    data: OriginUpdate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    origin = service.update_origin(
        db,
        origin_id,
        url=data.url,
        description=data.description,
        is_active=data.is_active,
    )
    _audit(
        db,
        request,
        current_user,
        AuditAction.ORIGIN_UPDATED,
        {"origin_id": origin_id, "changes": data.model_dump(exclude_none=True)},
    )
    return OriginMutationResponse(
        message="Origin updated successfully",
        data=OriginResponse.model_validate(origin),
        stats=_stats(service),
    )


@router.delete("/origins/{origin_id}", response_model=CorsMessageResponse)
def delete_origin(
    origin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    service.delete_origin(db, origin_id)
    _audit(db, request, current_user, AuditAction.ORIGIN_DELETED, {"origin_id": origin_id})
    return CorsMessageResponse(message="Origin deleted successfully", stats=_stats(service))


@router.patch("/origins/{origin_id}/toggle", response_model=OriginMutationResponse)
def toggle_origin(
    origin_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    service: OriginService = Depends(get_origin_service),
    db: Session = Depends(get_db)
):
    """Flip an origin between active and inactive"""
    origin = service.toggle_origin(db, origin_id)
    _audit(
        db,
        request,
        current_user,
        AuditAction.ORIGIN_TOGGLED,
        {"origin_id": origin_id, "is_active": origin.is_active},
    )
    state = "activated" if origin.is_active else "deactivated"
    return OriginMutationResponse(
        message=f"Origin {state} successfully",
        data=OriginResponse.model_validate(origin),
        stats=_stats(service),
    )
