# backend/routes/auth.py
from fastapi import APIRouter, Depends, HTTPException, status, Request, UploadFile, File
from sqlalchemy.orm import Session
from sqlalchemy import func

from utils.hashing import get_password_hash, verify_password
from utils.tokenJWT import create_access_token, get_current_user
from utils.audit import write_log, client_ip
from utils.storage import save_image, public_url
from models.users import User
from schemas import user as schemas
from database import get_db

router = APIRouter(tags=["Auth"])


def _user_out(request: Request, user: User) -> schemas.UserResponse:
    out = schemas.UserResponse.model_validate(user)
    out.avatar_url = public_url(request, user.avatar_url)
    return out


# Register a new customer account
@router.post("/register", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserCreate, request: Request, db: Session = Depends(get_db)):
    normalized_email = user.email.strip().lower()

    db_user = db.query(User).filter(func.lower(User.email) == normalized_email).first()
    if db_user:
        write_log(db, user_id=None, action="REGISTER", resource="auth", status="FAIL",
                  ip=client_ip(request), meta={"email": normalized_email, "reason": "Email exists"})
        raise HTTPException(status_code=400, detail="Email already registered")

    new_user = User(
        email=normalized_email,
        password_hash=get_password_hash(user.password),
        role="customer",
        full_name=user.full_name,
        phone=user.phone,
        address=user.address,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    write_log(db, user_id=new_user.id, action="REGISTER", resource="auth", status="SUCCESS",
              ip=client_ip(request), meta={"email": new_user.email})
    return _user_out(request, new_user)


# Check the password against the stored hash and issue a bearer token
@router.post("/login", response_model=schemas.Token)
def login(payload: schemas.UserLogin, request: Request, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    db_user = db.query(User).filter(func.lower(User.email) == email).first()

    if not db_user or not verify_password(payload.password, db_user.password_hash):
        write_log(db, user_id=(db_user.id if db_user else None), action="LOGIN", resource="auth",
                  status="FAIL", ip=client_ip(request), meta={"email": email})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password.")

    access_token = create_access_token(db_user)

    write_log(db, user_id=db_user.id, action="LOGIN", resource="auth",
              status="SUCCESS", ip=client_ip(request), meta={"email": db_user.email})

    return {"access_token": access_token, "token_type": "bearer", "user": _user_out(request, db_user)}


# Revoke every token issued so far for this user
@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(request: Request, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    current_user.token_version = (current_user.token_version or 0) + 1
    db.commit()
    write_log(db, user_id=current_user.id, action="LOGOUT", resource="auth", status="SUCCESS", ip=client_ip(request))


@router.get("/me", response_model=schemas.UserResponse)
def me(request: Request, current_user: User = Depends(get_current_user)):
    return _user_out(request, current_user)


@router.put("/me", response_model=schemas.UserResponse)
def update_profile(
    payload: schemas.ProfileUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)

    if data.get("email"):
        new_email = data["email"].strip().lower()
        if new_email != current_user.email:
            taken = db.query(User).filter(func.lower(User.email) == new_email, User.id != current_user.id).first()
            if taken:
                raise HTTPException(status_code=400, detail="Email already registered")
        data["email"] = new_email
    elif "email" in data:
        del data["email"]

    for key, value in data.items():
        setattr(current_user, key, value)
    db.commit()
    db.refresh(current_user)

    write_log(db, user_id=current_user.id, action="PROFILE_UPDATE", resource="auth", status="SUCCESS",
              ip=client_ip(request), meta={"fields": sorted(data.keys())})
    return _user_out(request, current_user)


@router.post("/me/avatar", response_model=schemas.UserResponse)
def upload_avatar(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # One file per user, overwritten on every upload
    current_user.avatar_url = save_image("user-avatars", file, name=f"avatar-{current_user.id}", upsert=True)
    db.commit()
    db.refresh(current_user)
    return _user_out(request, current_user)
