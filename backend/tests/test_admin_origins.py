import json
from types import SimpleNamespace

import pytest

from app.api import deps
from app.api.v1 import admin as admin_routes
from app.core.exceptions import AuthorizationError, ResourceNotFoundError
from app.models.audit import AuditLog
from app.schemas.origin import OriginCreate, OriginRemove, OriginUpdate
from app.schemas.user import UserRole
from app.services.audit_service import AuditAction
from app.services.origin_cache import OriginCache, OriginService


@pytest.fixture
def service():
    return OriginService(OriginCache(include_dev_origins=False, dev_origins=[]))


@pytest.fixture
def admin_user(make_user):
    return make_user(email="admin@example.com", roles=["USER", "ADMIN"])


def _request():
    return SimpleNamespace(headers={"user-agent": "pytest"}, client=SimpleNamespace(host="127.0.0.1"))


def test_non_admin_is_forbidden(make_user):
    user = make_user()
    with pytest.raises(AuthorizationError) as exc:
        deps.get_current_admin_user(current_user=user)
    assert exc.value.status_code == 403


def test_role_dependency_accepts_any_listed_role(make_user):
    moderator = make_user(email="mod@example.com", roles=["USER", "MODERATOR"])
    check = deps.require_roles(UserRole.MODERATOR, UserRole.ADMIN)
    assert check(current_user=moderator) is moderator

    with pytest.raises(AuthorizationError):
        deps.require_roles(UserRole.ADMIN)(current_user=moderator)


def test_create_origin_returns_stats_reflecting_the_change(db, service, admin_user):
    response = admin_routes.create_origin(
        OriginCreate(url="https://app.example.com/", description="Web app"),
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    assert response.message == "Origin added successfully"
    assert response.data.url == "https://app.example.com"
    assert response.stats.total_origins == 1
    assert response.stats.origins == ["https://app.example.com"]

    entry = db.query(AuditLog).filter(AuditLog.action == AuditAction.ORIGIN_CREATED).one()
    assert entry.user_id == admin_user.id
    assert json.loads(entry.metadata_json)["url"] == "https://app.example.com"


def test_toggle_route_reports_new_state(db, service, admin_user):
    created = admin_routes.create_origin(
        OriginCreate(url="https://app.example.com"),
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    response = admin_routes.toggle_origin(
        created.data.id,
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    assert response.message == "Origin deactivated successfully"
    assert response.data.is_active is False
    assert response.stats.total_origins == 0


def test_update_and_delete_routes(db, service, admin_user):
    created = admin_routes.create_origin(
        OriginCreate(url="https://app.example.com"),
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    updated = admin_routes.update_origin(
        created.data.id,
        OriginUpdate(url="https://www.example.com"),
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )
    assert updated.stats.origins == ["https://www.example.com"]

    deleted = admin_routes.delete_origin(
        created.data.id,
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )
    assert deleted.message == "Origin deleted successfully"
    assert deleted.stats.total_origins == 0
    assert admin_routes.list_origins(current_user=admin_user, service=service, db=db) == []


def test_cors_refresh_route_picks_up_external_changes(db, service, admin_user):
    from app.models.origin import AllowedOrigin

    db.add(AllowedOrigin(url="https://seeded.example.com"))
    db.commit()
    assert admin_routes.get_cors_stats(current_user=admin_user, service=service).total_origins == 0

    response = admin_routes.refresh_cors_cache(
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    assert response.stats.origins == ["https://seeded.example.com"]
    assert db.query(AuditLog).filter(AuditLog.action == AuditAction.CORS_CACHE_REFRESHED).count() == 1


def test_origin_urls_are_validated():
    with pytest.raises(ValueError):
        OriginCreate(url="ftp://files.example.com")
    with pytest.raises(ValueError):
        OriginCreate(url="https://app.example.com/path")
    with pytest.raises(ValueError):
        OriginUpdate()


def test_moderators_can_list_users(db, make_user):
    from app.api.v1 import users as user_routes

    moderator = make_user(email="mod@example.com", roles=["USER", "MODERATOR"])
    make_user()

    route = next(r for r in user_routes.router.routes if r.endpoint is user_routes.get_all_users)
    check = next(dep.call for dep in route.dependant.dependencies if dep.name == "current_user")
    assert check(current_user=moderator) is moderator
    listed = user_routes.get_all_users(role=None, current_user=moderator, db=db)
    assert {user.email for user in listed} == {"mod@example.com", "alice@example.com"}

    with pytest.raises(AuthorizationError):
        check(current_user=make_user(email="plain@example.com"))


def test_deactivate_by_url_route(db, service, admin_user):
    admin_routes.create_origin(
        OriginCreate(url="https://app.example.com"),
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    response = admin_routes.deactivate_origin_by_url(
        OriginRemove(url="https://APP.example.com/"),
        request=_request(),
        current_user=admin_user,
        service=service,
        db=db,
    )

    assert response.message == "Origin deactivated successfully"
    assert response.stats.total_origins == 0
    assert admin_routes.list_origins(current_user=admin_user, service=service, db=db)[0].is_active is False
    assert db.query(AuditLog).filter(AuditLog.action == AuditAction.ORIGIN_DEACTIVATED).count() == 1

    with pytest.raises(ResourceNotFoundError):
        admin_routes.deactivate_origin_by_url(
            OriginRemove(url="https://unknown.example.com"),
            request=_request(),
            current_user=admin_user,
            service=service,
            db=db,
        )


def test_origin_scheme_and_host_are_lowercased():
    assert OriginCreate(url="HTTPS://App.Example.com/").url == "https://app.example.com"
    assert OriginUpdate(url="http://LOCALHOST:3000").url == "http://localhost:3000"
