from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from common import auth
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import allow_roles, get_current_active_member
from common.logging_middleware import add_audit_middleware
from common.models import BlacklistEntry, Member, RoleEnum
from common.rate_limit import apply_error_handlers, apply_rate_limiter, limiter
from common.schemas import BlacklistRead, MemberCreate, MemberRead, MemberUpdate, Token

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Users Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "users")
    return fastapi_app


app = create_app()
admins_only = allow_roles(RoleEnum.ADMIN)


def _get_member_or_404(db: Session, username: str) -> Member:
    member = db.query(Member).filter(Member.username == username).first()
    if not member:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/users/register", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_member(request: Request, member_in: MemberCreate, db: Session = Depends(get_db)) -> Member:
    if db.query(Member).filter((Member.username == member_in.username) | (Member.email == member_in.email)).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")

    # The first admin may self-register; afterwards elevated roles are granted by admins only.
    admins_exist = db.query(Member).filter(Member.role == RoleEnum.ADMIN).first() is not None
    if member_in.role != RoleEnum.EMPLOYEE and admins_exist:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can assign elevated roles")

    member = Member(
        username=member_in.username,
        email=member_in.email,
        first_name=member_in.first_name,
        last_name=member_in.last_name,
        role=member_in.role,
        hashed_password=auth.get_password_hash(member_in.password),
    )
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


@app.post("/users/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    member = auth.authenticate_member(db, form_data.username, form_data.password)
    if not member:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    access_token = auth.create_access_token({"sub": member.username, "role": member.role.value})
    return Token(access_token=access_token)


@app.get("/users", response_model=list[MemberRead])
@limiter.limit("20/minute")
def list_members(request: Request, _: Member = Depends(admins_only), db: Session = Depends(get_db)) -> list[Member]:
    return db.query(Member).order_by(Member.id).all()


@app.get("/users/{username}", response_model=MemberRead)
@limiter.limit("30/minute")
def get_member(
    request: Request,
    username: str,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> Member:
    member = _get_member_or_404(db, username)
    if current_member.role != RoleEnum.ADMIN and current_member.username != username:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return member


@app.put("/users/{username}", response_model=MemberRead)
@limiter.limit("10/minute")
def update_member(
    request: Request,
    username: str,
    member_update: MemberUpdate,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> Member:
    member = _get_member_or_404(db, username)
    is_admin = current_member.role == RoleEnum.ADMIN
    if not is_admin and current_member.username != username:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    data = member_update.model_dump(exclude_unset=True)
    if not is_admin and data.keys() & {"role", "is_active"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can change role or status")
    if data.get("email") and data["email"] != member.email:
        if db.query(Member).filter(Member.email == data["email"]).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")

    password = data.pop("password", None)
    if password:
        member.hashed_password = auth.get_password_hash(password)
    for key, value in data.items():
        if value is not None:
            setattr(member, key, value)

    db.commit()
    db.refresh(member)
    return member


@app.get("/blacklist", response_model=list[BlacklistRead])
@limiter.limit("20/minute")
def list_blacklist(request: Request, _: Member = Depends(admins_only), db: Session = Depends(get_db)) -> list[BlacklistEntry]:
    return db.query(BlacklistEntry).order_by(BlacklistEntry.locked_at.desc()).all()


@app.post("/blacklist/{member_id}", response_model=BlacklistRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def lock_member(
    request: Request,
    member_id: int,
    _: Member = Depends(admins_only),
    db: Session = Depends(get_db),
) -> BlacklistEntry:
    if not db.get(Member, member_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    entry = BlacklistEntry(member_id=member_id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@app.delete("/blacklist/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
def unlock_member(
    request: Request,
    member_id: int,
    _: Member = Depends(admins_only),
    db: Session = Depends(get_db),
) -> None:
    deleted = db.query(BlacklistEntry).filter(BlacklistEntry.member_id == member_id).delete()
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member is not blacklisted")
    db.commit()
