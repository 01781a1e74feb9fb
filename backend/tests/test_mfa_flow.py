import pyotp
import pytest
from sqlalchemy import update

from app.core.exceptions import (
    ConcurrentModificationError,
    InvalidMfaCodeError,
    MfaAlreadyEnabledError,
    MfaNotEnabledError,
    MfaSetupNotInitiatedError,
)
from app.models.audit import AuditLog
from app.models.security import RefreshToken
from app.models.user import User
from app.services.audit_service import AuditAction

from conftest import PASSWORD


def _code(secret):
    return pyotp.TOTP(secret).now()


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def mfa_user(db, auth, user):
    enrollment = auth.enable_mfa(db, user.id)
    auth.verify_mfa(db, user.id, _code(enrollment.secret))
    return user, enrollment


def test_enable_leaves_mfa_pending(db, auth, user):
    enrollment = auth.enable_mfa(db, user.id)

    assert enrollment.qr_code.startswith("data:image/png;base64,")
    assert len(enrollment.backup_codes) == 4

    db.refresh(user)
    assert user.is_mfa_enabled is False
    assert user.mfa_secret == enrollment.secret
    # Only digests are stored
    assert len(user.mfa_backup_codes) == 4
    assert not set(enrollment.backup_codes) & set(user.mfa_backup_codes)


def test_pending_mfa_does_not_affect_login(db, auth, user):
    auth.enable_mfa(db, user.id)
    result = auth.login(db, user.email, PASSWORD)
    assert result.requires_mfa is False
    assert result.access_token


def test_enable_can_be_restarted_while_pending(db, auth, user):
    first = auth.enable_mfa(db, user.id)
    second = auth.enable_mfa(db, user.id)
    assert first.secret != second.secret

    db.refresh(user)
    assert user.mfa_secret == second.secret


def test_verify_without_setup(db, auth, user):
    with pytest.raises(MfaSetupNotInitiatedError):
        auth.verify_mfa(db, user.id, "123456")


def test_verify_with_wrong_code_keeps_mfa_pending(db, auth, user):
    enrollment = auth.enable_mfa(db, user.id)
    wrong = "000000" if _code(enrollment.secret) != "000000" else "111111"

    with pytest.raises(InvalidMfaCodeError):
        auth.verify_mfa(db, user.id, wrong)

    db.refresh(user)
    assert user.is_mfa_enabled is False


def test_verify_activates_mfa(db, auth, mfa_user):
    user, _ = mfa_user
    db.refresh(user)
    assert user.is_mfa_enabled is True
    actions = [entry.action for entry in db.query(AuditLog).all()]
    assert AuditAction.MFA_ENABLED in actions


def test_enable_when_already_active(db, auth, mfa_user):
    user, _ = mfa_user
    with pytest.raises(MfaAlreadyEnabledError):
        auth.enable_mfa(db, user.id)


def test_login_without_code_returns_challenge(db, auth, mfa_user):
    user, _ = mfa_user
    result = auth.login(db, user.email, PASSWORD)

    assert result.requires_mfa is True
    assert result.temp_token
    assert result.access_token is None
    assert result.refresh_token is None
    assert db.query(RefreshToken).count() == 0


def test_login_with_totp_code(db, auth, mfa_user):
    user, enrollment = mfa_user
    result = auth.login(db, user.email, PASSWORD, totp_code=_code(enrollment.secret))
    assert result.requires_mfa is False
    assert result.access_token
    assert result.refresh_token


def test_login_with_wrong_code(db, auth, mfa_user):
    user, enrollment = mfa_user
    wrong = "000000" if _code(enrollment.secret) != "000000" else "111111"
    with pytest.raises(InvalidMfaCodeError):
        auth.login(db, user.email, PASSWORD, totp_code=wrong)


def test_backup_code_is_consumed_once(db, auth, mfa_user):
    user, enrollment = mfa_user
    backup = enrollment.backup_codes[0]

    result = auth.login(db, user.email, PASSWORD, totp_code=backup.lower())
    assert result.access_token

    db.refresh(user)
    assert len(user.mfa_backup_codes) == 3
    actions = [entry.action for entry in db.query(AuditLog).all()]
    assert AuditAction.MFA_BACKUP_CODE_USED in actions

    with pytest.raises(InvalidMfaCodeError):
        auth.login(db, user.email, PASSWORD, totp_code=backup)


def test_backup_code_consumption_loses_to_concurrent_change(db, auth, mfa_user):
    user, enrollment = mfa_user
    stale = db.query(User).filter(User.id == user.id).one()
    stale_codes = list(stale.mfa_backup_codes)
    assert stale.mfa_version >= 1

    # Another request changes the MFA state behind this session's back
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(mfa_version=User.mfa_version + 1)
        .execution_options(synchronize_session=False)
    )

    assert auth._consume_backup_code(db, stale, enrollment.backup_codes[0]) is False
    db.refresh(user)
    assert user.mfa_backup_codes == stale_codes


def test_disable_with_wrong_code(db, auth, mfa_user):
    user, enrollment = mfa_user
    wrong = "000000" if _code(enrollment.secret) != "000000" else "111111"
    with pytest.raises(InvalidMfaCodeError):
        auth.disable_mfa(db, user.id, wrong)
    db.refresh(user)
    assert user.is_mfa_enabled is True


def test_disable_clears_mfa_state(db, auth, mfa_user):
    user, enrollment = mfa_user
    assert auth.disable_mfa(db, user.id, _code(enrollment.secret)) == "MFA disabled successfully"

    db.refresh(user)
    assert user.is_mfa_enabled is False
    assert user.mfa_secret is None
    assert user.mfa_backup_codes == []

    result = auth.login(db, user.email, PASSWORD)
    assert result.requires_mfa is False


def test_disable_when_not_enabled(db, auth, user):
    with pytest.raises(MfaNotEnabledError):
        auth.disable_mfa(db, user.id, "123456")


def _change_behind_session(db, user_id, **values):
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(mfa_version=User.mfa_version + 1, **values)
        .execution_options(synchronize_session=False)
    )


def test_enable_loses_to_concurrent_activation(db, auth, user, monkeypatch):
    generate = auth.mfa.generate_backup_codes

    def activate_then_generate(*args, **kwargs):
        # A parallel enrollment finishes between the check and the write
        _change_behind_session(db, user.id, is_mfa_enabled=True, mfa_secret="PARALLELSECRET")
        return generate(*args, **kwargs)

    monkeypatch.setattr(auth.mfa, "generate_backup_codes", activate_then_generate)

    with pytest.raises(MfaAlreadyEnabledError):
        auth.enable_mfa(db, user.id)

    db.refresh(user)
    assert user.mfa_secret == "PARALLELSECRET"
    assert user.mfa_backup_codes == []


def test_verify_loses_when_secret_is_replaced(db, auth, user, monkeypatch):
    enrollment = auth.enable_mfa(db, user.id)
    verify = auth.mfa.verify

    def restart_then_verify(code, secret):
        _change_behind_session(db, user.id, mfa_secret="RESTARTEDSECRET")
        return verify(code, secret)

    monkeypatch.setattr(auth.mfa, "verify", restart_then_verify)

    with pytest.raises(ConcurrentModificationError) as exc:
        auth.verify_mfa(db, user.id, _code(enrollment.secret))
    assert exc.value.status_code == 409

    db.refresh(user)
    assert user.is_mfa_enabled is False
    assert user.mfa_secret == "RESTARTEDSECRET"
    assert db.query(AuditLog).filter(AuditLog.action == AuditAction.MFA_ENABLED).count() == 0


def test_disable_loses_to_concurrent_disable(db, auth, mfa_user, monkeypatch):
    user, enrollment = mfa_user
    verify = auth.mfa.verify

    def disable_then_verify(code, secret):
        _change_behind_session(db, user.id, is_mfa_enabled=False)
        return verify(code, secret)

    monkeypatch.setattr(auth.mfa, "verify", disable_then_verify)

    with pytest.raises(MfaNotEnabledError):
        auth.disable_mfa(db, user.id, _code(enrollment.secret))
    assert db.query(AuditLog).filter(AuditLog.action == AuditAction.MFA_DISABLED).count() == 0
