"""
Account lifecycle: registration, email verification, login, profile and
company data, logo, archival and password recovery.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash, verify_password
from ..config import settings
from ..errors import Conflict, Forbidden, InvalidState, NotFound, Unauthorized, UpstreamFailure
from ..models.models import Company, Invitation, User, utcnow
from ..schemas.auth import (
    CompanyRequest,
    OnboardingRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RestoreAccountRequest,
    VerifyEmailRequest,
)
from ..storage.provider import BlobStore, BlobStoreError
from . import archive, mailer


logger = structlog.get_logger(__name__)

LABEL = "USER"
COMPANY_EDITORS = ("owner", "admin")


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()


def register(db: Session, payload: RegisterRequest) -> User:
    email = payload.email.lower()
    user = find_by_email(db, email)
    if user is not None and user.validated:
        raise Conflict("USER_ALREADY_EXISTS")
    code = generate_code()
    if user is None:
        user = User(email=email)
        db.add(user)
    user.first_name = payload.first_name
    user.last_name = payload.last_name
    user.password_hash = get_password_hash(payload.password)
    user.validated = False
    user.verification_code = code
    user.verification_expires_at = utcnow() + timedelta(seconds=settings.verification_ttl_seconds)
    user.verification_attempts = settings.verification_max_attempts
    db.commit()
    db.refresh(user)
    logger.info("user_registered", user_id=str(user.id))
    mailer.send_verification_email(user.email, code)
    return user


def verify_email(db: Session, payload: VerifyEmailRequest) -> User:
    user = find_by_email(db, payload.email)
    if user is None:
        raise NotFound("USER_NOT_FOUND")
    if user.validated:
        raise InvalidState("EMAIL_ALREADY_VERIFIED")
    expires_at = _as_utc(user.verification_expires_at)
    if (
        not user.verification_code
        or user.verification_attempts <= 0
        or (expires_at is not None and expires_at < datetime.now(timezone.utc))
    ):
        raise InvalidState("VERIFICATION_CODE_EXPIRED")
    if not secrets.compare_digest(user.verification_code, payload.code):
        user.verification_attempts -= 1
        db.commit()
        logger.info("verification_code_rejected", user_id=str(user.id), attempts_left=user.verification_attempts)
        raise InvalidState("INVALID_VERIFICATION_CODE")
    user.validated = True
    user.verification_code = None
    user.verification_expires_at = None
    db.commit()
    db.refresh(user)
    logger.info("email_verified", user_id=str(user.id))
    return user


def login(db: Session, email: str, password: str) -> User:
    user = find_by_email(db, email)
    if user is None:
        raise NotFound("USER_NOT_EXISTS")
    if user.deleted:
        raise Forbidden("ACCOUNT_ARCHIVED")
    if not user.validated:
        raise Forbidden("EMAIL_NOT_VERIFIED")
    if not verify_password(password, user.password_hash):
        logger.info("login_failed", user_id=str(user.id))
        raise Unauthorized("INVALID_PASSWORD")
    return user


def update_onboarding(db: Session, user: User, payload: OnboardingRequest) -> User:
    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        if value is not None:
            setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user


def save_company(db: Session, user: User, payload: CompanyRequest) -> Company:
    """Create the caller's company, or update it when they already belong to one."""
    address = payload.address.model_dump() if payload.address is not None else None
    if user.company_id is not None:
        if user.company_role not in COMPANY_EDITORS:
            raise Forbidden("NOT_ALLOWED_TO_EDIT_COMPANY")
        company = db.get(Company, user.company_id)
        if company is None:
            raise NotFound("COMPANY_NOT_FOUND")
        company.name = payload.name
        company.cif = payload.cif
        company.address = address
        db.commit()
        db.refresh(company)
        return company
    company = Company(name=payload.name, cif=payload.cif, address=address, founder_id=user.id)
    db.add(company)
    db.flush()
    user.company_id = company.id
    user.company_role = "owner"
    db.commit()
    db.refresh(company)
    logger.info("company_created", company_id=str(company.id), founder_id=str(user.id))
    return company


def upload_logo(
    db: Session,
    user: User,
    store: BlobStore,
    data: Optional[bytes],
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> User:
    if not data:
        raise InvalidState("NO_FILE_PROVIDED")
    try:
        content_hash = store.pin(data, filename or "logo", content_type)
    except BlobStoreError as e:
        raise UpstreamFailure("ERROR_UPLOADING_LOGO") from e
    user.profile_picture = store.url_for(content_hash)
    db.commit()
    db.refresh(user)
    return user


def delete_account(db: Session, user: User, soft: bool = True) -> str:
    if soft:
        archive.archive(db, user, LABEL)
        return "USER_ARCHIVED"
    db.query(Invitation).filter(
        or_(Invitation.inviter_id == user.id, Invitation.invitee_id == user.id)
    ).delete(synchronize_session=False)
    archive.purge(db, user, LABEL)
    return "USER_DELETED_PERMANENTLY"


def restore_account(db: Session, payload: RestoreAccountRequest) -> User:
    user = find_by_email(db, payload.email)
    if user is None:
        raise NotFound("USER_NOT_FOUND")
    if not verify_password(payload.password, user.password_hash):
        raise Unauthorized("INVALID_PASSWORD")
    return archive.restore(db, user, LABEL)


def forgot_password(db: Session, email: str) -> None:
    user = find_by_email(db, email)
    if user is None:
        raise NotFound("USER_NOT_FOUND")
    token = generate_code()
    user.reset_token = token
    user.reset_expires_at = utcnow() + timedelta(seconds=settings.reset_ttl_seconds)
    db.commit()
    logger.info("password_reset_requested", user_id=str(user.id))
    mailer.send_password_reset_email(user.email, token)


def reset_password(db: Session, payload: ResetPasswordRequest) -> User:
    now = datetime.now(timezone.utc)
    candidates = db.query(User).filter(User.reset_token == payload.token).all()
    user = next(
        (u for u in candidates if u.reset_expires_at is not None and _as_utc(u.reset_expires_at) > now),
        None,
    )
    if user is None:
        raise InvalidState("INVALID_OR_EXPIRED_TOKEN")
    user.password_hash = get_password_hash(payload.new_password)
    user.reset_token = None
    user.reset_expires_at = None
    db.commit()
    db.refresh(user)
    logger.info("password_reset", user_id=str(user.id))
    return user
