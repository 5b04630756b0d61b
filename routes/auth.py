import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import desc
from uuid import uuid4
from core.auth import (
    JWTBearer,
    create_access_token,
    create_refresh_token,
    decodeJWT,
    get_current_user,
    roles_required,
    token_required,
)
from controllers.roster import (
    ensure_number_available,
    invalidate_cache,
    link_registration,
    relink_registration,
)
from database.database import get_db
from models.enums import Role
from models.token import Token
from models.user import User
from utils.token import get_hashed_password, verify_password
from utils.state import State
from schema.auth import (
    ChangePasswordRequest,
    LoginRequest,
    PredefinedAccountRequest,
    RefreshRequest,
    RegisterRequest,
)

router = APIRouter()


def _refresh_payload(refresh_token: str) -> dict:
    payload = decodeJWT(refresh_token)
    if not payload or payload.get("type") != "refresh":
        State.logger.error("Invalid refresh token")
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return payload


@router.post("/register")
async def register_user(
    req: RegisterRequest,
    db=Depends(get_db),
):
    try:
        user = db.query(User).filter(User.email == req.email).first()
        if user:
            State.logger.error("User with email already exists")
            raise HTTPException(
                status_code=400, detail="User with email already exists"
            )
        ensure_number_available(req.number.strip(), None, db)
        new_user = User(
            user_id=str(uuid4()),
            name=req.name.strip(),
            email=req.email,
            password=get_hashed_password(req.password),
            number=req.number.strip(),
            role=Role.STUDENT.value,
            time_created=datetime.datetime.now(datetime.UTC).isoformat(),
            time_updated=datetime.datetime.now(datetime.UTC).isoformat(),
        )
        db.add(new_user)
        db.flush()
        link_registration(new_user, db)
        db.commit()
        db.refresh(new_user)
        invalidate_cache()
        State.logger.info(f"Student {new_user.number} registered")
        return {"message": "User created successfully", "user_id": new_user.user_id}
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while registering user: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while registering user: {str(e)}"
        )


@router.post("/login")
async def login_user(
    req: LoginRequest,
    db=Depends(get_db),
):
    try:
        user = db.query(User).filter(User.email == req.email).first()
        if not user or not verify_password(req.password, user.password):
            State.logger.error("Invalid credentials")
            raise HTTPException(status_code=401, detail="Invalid credentials")
        access_token = create_access_token(subject=user.user_id, role=user.role)
        refresh_token = create_refresh_token(subject=user.user_id)

        # Logout of previous session
        token = (
            db.query(Token)
            .filter_by(user_id=user.user_id, status=True)
            .order_by(desc(Token.time_created))
            .first()
        )
        if token:
            token.status = False
            token.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
            db.add(token)
            db.commit()
            db.refresh(token)

        new_token = Token(
            token_id=str(uuid4()),
            user_id=user.user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            status=True,
            time_created=datetime.datetime.now(datetime.UTC).isoformat(),
            time_updated=datetime.datetime.now(datetime.UTC).isoformat(),
        )
        db.add(new_token)
        db.commit()
        db.refresh(new_token)
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "role": user.role,
        }
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while login: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while login: {str(e)}"
        )


@router.post("/relogin")
async def relogin_user(req: RefreshRequest, db=Depends(get_db)):
    try:
        user_id = _refresh_payload(req.refresh_token)["sub"]
        user = db.query(User).filter(User.user_id == user_id).first()
        if not user:
            State.logger.error("User not found")
            raise HTTPException(status_code=404, detail="User not found")
        token = (
            db.query(Token)
            .filter_by(user_id=user_id, refresh_token=req.refresh_token, status=True)
            .order_by(desc(Token.time_created))
            .first()
        )
        if not token:
            State.logger.error("Refresh token is no longer active")
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        new_access_token = create_access_token(subject=user.user_id, role=user.role)
        token.access_token = new_access_token
        token.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
        db.add(token)
        db.commit()
        db.refresh(token)
        return {
            "access_token": new_access_token,
            "refresh_token": req.refresh_token,
        }
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while relogin: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while relogin: {str(e)}"
        )


@router.post("/refresh")
async def refresh_token(
    req: RefreshRequest,
    db=Depends(get_db),
):
    try:
        user_id = _refresh_payload(req.refresh_token)["sub"]
        user = db.query(User).filter(User.user_id == user_id).first()
        if not user:
            State.logger.error("User not found")
            raise HTTPException(status_code=404, detail="User not found")
        token = (
            db.query(Token)
            .filter_by(user_id=user_id, refresh_token=req.refresh_token, status=True)
            .order_by(desc(Token.time_created))
            .first()
        )
        if not token:
            State.logger.error("Refresh token is no longer active")
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        new_access_token = create_access_token(subject=user.user_id, role=user.role)
        new_refresh_token = create_refresh_token(subject=user.user_id)
        token.access_token = new_access_token
        token.refresh_token = new_refresh_token
        token.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
        db.add(token)
        db.commit()
        db.refresh(token)
        return {
            "access_token": new_access_token,
            "refresh_token": new_refresh_token,
        }
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while refreshing token: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while refreshing token: {str(e)}"
        )


@router.post("/logout")
@token_required
async def logout_user(
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        token = (
            db.query(Token)
            .filter_by(user_id=user.user_id, access_token=dependencies, status=True)
            .order_by(desc(Token.time_created))
            .first()
        )
        if token:
            token.status = False
            token.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
            db.add(token)
            db.commit()
            db.refresh(token)
        return {"message": "User logged out successfully"}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while logout: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"An error occured while logout: {str(e)}"
        )


@router.post("/change-password")
@token_required
async def change_password(
    req: ChangePasswordRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    try:
        user = get_current_user(dependencies, db)
        if not verify_password(req.current_password, user.password):
            State.logger.error(f"Wrong current password for user {user.user_id}")
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        if req.new_password != req.confirm_password:
            raise HTTPException(status_code=400, detail="New passwords do not match")
        user.password = get_hashed_password(req.new_password)
        user.time_updated = datetime.datetime.now(datetime.UTC).isoformat()
        db.commit()
        return {"message": "Password changed successfully"}
    except HTTPException:
        raise
    except Exception as e:
        State.logger.error(f"An error occured while changing password: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while changing password: {str(e)}",
        )


@router.post("/predefined-account")
@token_required
@roles_required(Role.ADMIN)
async def create_predefined_account(
    req: PredefinedAccountRequest,
    dependencies=Depends(JWTBearer()),
    db=Depends(get_db),
):
    """Create an account with an explicit role, or overwrite the one with that email."""
    try:
        timestamp = datetime.datetime.now(datetime.UTC).isoformat()
        user = db.query(User).filter(User.email == req.email).first()
        created = user is None
        if created:
            user = User(user_id=str(uuid4()), email=req.email, time_created=timestamp)
            db.add(user)
        user.password = get_hashed_password(req.password)
        user.role = req.role.value
        user.number = req.number
        user.name = req.name
        user.time_updated = timestamp
        db.flush()
        relink_registration(user, db)
        db.commit()
        invalidate_cache()
        State.logger.info(f"Predefined {user.role} account {'created' if created else 'updated'}")
        return {"message": "Account saved successfully", "user_id": user.user_id, "created": created}
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        State.logger.error(f"An error occured while saving predefined account: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"An error occured while saving predefined account: {str(e)}",
        )
