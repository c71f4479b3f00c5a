import uuid
from typing import List

import structlog
from sqlalchemy.orm import Session

from ..errors import Conflict, InvalidState, NotFound
from ..models.models import Company, Invitation, User
from ..schemas.auth import InvitationRequest
from . import mailer


logger = structlog.get_logger(__name__)

# Invitation role -> membership role granted on accept
MEMBERSHIP_ROLES = {"admin": "admin", "user": "user", "invited": "user"}


def send_invitation(db: Session, inviter: User, payload: InvitationRequest) -> Invitation:
    if inviter.company_id is None or inviter.company is None:
        raise InvalidState("YOU_NEED_A_COMPANY_TO_INVITE")
    invitee = (
        db.query(User)
        .filter(User.email == payload.email.lower(), User.deleted.is_(False))
        .first()
    )
    if invitee is None:
        raise NotFound("USER_NOT_FOUND")
    already_sent = (
        db.query(Invitation.id)
        .filter(
            Invitation.inviter_id == inviter.id,
            Invitation.invitee_id == invitee.id,
            Invitation.status == "pending",
        )
        .first()
    )
    if already_sent is not None:
        raise Conflict("INVITATION_ALREADY_SENT")
    if invitee.company_id == inviter.company_id:
        raise Conflict("USER_ALREADY_IN_COMPANY")
    invitation = Invitation(
        inviter_id=inviter.id,
        invitee_id=invitee.id,
        company_id=inviter.company_id,
        company_name=inviter.company.name,
        role=payload.role,
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)
    logger.info("invitation_sent", invitation_id=str(invitation.id), inviter_id=str(inviter.id), invitee_id=str(invitee.id))
    mailer.send_invitation_email(invitee.email, inviter.full_name, invitation.company_name)
    return invitation


def list_received(db: Session, user: User) -> List[Invitation]:
    return (
        db.query(Invitation)
        .filter(Invitation.invitee_id == user.id)
        .order_by(Invitation.created_at.desc())
        .all()
    )


def list_sent(db: Session, user: User) -> List[Invitation]:
    return (
        db.query(Invitation)
        .filter(Invitation.inviter_id == user.id)
        .order_by(Invitation.created_at.desc())
        .all()
    )


def _pending(db: Session, invitation_id: uuid.UUID, party, user_id: uuid.UUID) -> Invitation:
    invitation = (
        db.query(Invitation)
        .filter(Invitation.id == invitation_id, Invitation.status == "pending", party == user_id)
        .first()
    )
    if invitation is None:
        raise NotFound("INVITATION_NOT_FOUND_OR_ALREADY_PROCESSED")
    return invitation


def accept_invitation(db: Session, user: User, invitation_id: uuid.UUID) -> Company:
    invitation = _pending(db, invitation_id, Invitation.invitee_id, user.id)
    company = db.get(Company, invitation.company_id)
    if company is None:
        raise NotFound("INVITER_OR_COMPANY_NOT_FOUND")
    # Status and membership move together
    invitation.status = "accepted"
    user.company_id = company.id
    user.company_role = MEMBERSHIP_ROLES.get(invitation.role, "user")
    db.commit()
    db.refresh(company)
    logger.info("invitation_accepted", invitation_id=str(invitation.id), user_id=str(user.id), company_id=str(company.id))
    return company


def reject_invitation(db: Session, user: User, invitation_id: uuid.UUID) -> Invitation:
    invitation = _pending(db, invitation_id, Invitation.invitee_id, user.id)
    invitation.status = "rejected"
    db.commit()
    db.refresh(invitation)
    logger.info("invitation_rejected", invitation_id=str(invitation.id), user_id=str(user.id))
    return invitation


def cancel_invitation(db: Session, user: User, invitation_id: uuid.UUID) -> None:
    invitation = _pending(db, invitation_id, Invitation.inviter_id, user.id)
    db.delete(invitation)
    db.commit()
    logger.info("invitation_cancelled", invitation_id=str(invitation_id), user_id=str(user.id))
