import uuid
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..routes.files import get_blob_store
from ..schemas.auth import (
    AuthResponse,
    CompanyRequest,
    CompanyResponse,
    ForgotPasswordRequest,
    InvitationRequest,
    InvitationResponse,
    LoginRequest,
    OnboardingRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RestoreAccountRequest,
    UserResponse,
    VerifyEmailRequest,
)
from ..services import invitations as invitation_service
from ..services import users as user_service
from ..storage.provider import BlobStore
from .security import create_access_token, get_current_user


router = APIRouter(prefix="/api/user", tags=["user"])


def _auth_payload(user: User) -> dict:
    return {"token": create_access_token(user), "user": UserResponse.model_validate(user)}


# ----- Account -----

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = user_service.register(db, payload)
    return _auth_payload(user)


@router.post("/verify-email")
def verify_email(payload: VerifyEmailRequest, db: Session = Depends(get_db)):
    user = user_service.verify_email(db, payload)
    return {"message": "EMAIL_VERIFIED", "user": UserResponse.model_validate(user)}


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = user_service.login(db, payload.email, payload.password)
    return _auth_payload(user)


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    user_service.forgot_password(db, payload.email)
    return {"message": "PASSWORD_RESET_EMAIL_SENT"}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    user_service.reset_password(db, payload)
    return {"message": "PASSWORD_RESET"}


@router.post("/restore", response_model=AuthResponse)
def restore_account(payload: RestoreAccountRequest, db: Session = Depends(get_db)):
    user = user_service.restore_account(db, payload)
    return _auth_payload(user)


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.put("/onboarding", response_model=UserResponse)
def onboarding(payload: OnboardingRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return user_service.update_onboarding(db, user, payload)


@router.patch("/company", response_model=CompanyResponse)
def save_company(payload: CompanyRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return user_service.save_company(db, user, payload)


@router.patch("/logo")
def upload_logo(
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
):
    data = image.file.read()
    user = user_service.upload_logo(db, user, store, data, image.filename, image.content_type)
    return {"message": "LOGO_UPDATED", "profile_picture": user.profile_picture}


@router.delete("/delete")
def delete_account(soft: bool = True, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"message": user_service.delete_account(db, user, soft=soft)}


# ----- Invitations -----

@router.post("/invitations/send", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
def send_invitation(payload: InvitationRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return invitation_service.send_invitation(db, user, payload)


@router.get("/invitations/received", response_model=List[InvitationResponse])
def received_invitations(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return invitation_service.list_received(db, user)


@router.get("/invitations/sent", response_model=List[InvitationResponse])
def sent_invitations(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return invitation_service.list_sent(db, user)


@router.put("/invitations/accept/{invitation_id}")
def accept_invitation(invitation_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    company = invitation_service.accept_invitation(db, user, invitation_id)
    return {"message": "INVITATION_ACCEPTED", "company": CompanyResponse.model_validate(company)}


@router.put("/invitations/reject/{invitation_id}")
def reject_invitation(invitation_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    invitation_service.reject_invitation(db, user, invitation_id)
    return {"message": "INVITATION_REJECTED"}


@router.delete("/invitations/cancel/{invitation_id}")
def cancel_invitation(invitation_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    invitation_service.cancel_invitation(db, user, invitation_id)
    return {"message": "INVITATION_CANCELLED"}
