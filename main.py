import logging
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, field_validator

import settings
from aggregates import on_rating_deleted, recompute_all
from catalog import AGGREGATE_KEYS, CATALOG_VERSION, CRITERIA, CabinType
from database import ensure_indexes, get_db
from errors import TransientIOError, Unauthenticated
from normalizer import normalize_entry, normalize_ship_info
from schemas import CriterionEntry, ShipInfo
from stores import RatingStore, ShipStore, sort_by_recency, to_object_id
from submission import list_user_ratings, submit_rating

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = settings.LOG_LEVEL):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=settings.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    ensure_indexes(get_db())
    yield


# App setup
app = FastAPI(title="Ship Rating App", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")

# Helpers

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

# Pydantic models
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict

class RegisterRequest(BaseModel):
    name: str
    display_name: Optional[str] = None
    email: EmailStr
    password: str

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class ShipOut(BaseModel):
    id: str
    name: str
    imo: Optional[str] = None
    info: ShipInfo
    means: Dict[str, float] = {}

class RatingIn(BaseModel):
    ship_name: str
    imo: Optional[str] = None
    disembarkation_date: date
    cabin_type: CabinType
    general_observation: Optional[str] = None
    # Coerced by the normalizer rather than validated here.
    items: Dict[str, Any] = {}
    ship_info: Optional[Dict[str, Any]] = None

    @field_validator("ship_name")
    @classmethod
    def ship_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Ship name is required")
        return v

class RatingOut(BaseModel):
    id: str
    ship_id: str
    ship_name: Optional[str] = None
    ship_imo: Optional[str] = None
    user_id: Optional[str] = None
    user_display_name: str
    disembarkation_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    cabin_type: Optional[str] = None
    general_observation: str = ""
    items: Dict[str, CriterionEntry] = {}
    ship_info: ShipInfo

class SubmissionOut(BaseModel):
    ship: ShipOut
    rating_id: str

# Dependencies

def get_ship_store(db=Depends(get_db)) -> ShipStore:
    return ShipStore(db)

def get_rating_store(db=Depends(get_db)) -> RatingStore:
    return RatingStore(db)

async def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise credentials_exception
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account disabled")
    user["id"] = str(user.pop("_id"))
    return user

# Role guard
def require_role(*roles):
    async def _guard(user=Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard

# Error mapping
@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return JSONResponse(status_code=401, content={"detail": str(exc)}, headers={"WWW-Authenticate": "Bearer"})

@app.exception_handler(TransientIOError)
async def transient_io_handler(request: Request, exc: TransientIOError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable, please retry"})

# Utilities

def serialize_ship(doc) -> dict:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "imo": doc.get("imo"),
        "info": doc.get("info") or {},
        "means": doc.get("means") or {},
    }

def serialize_rating(doc) -> dict:
    # Stored items may predate normalization or be written out-of-band.
    items = doc.get("items")
    if not isinstance(items, dict):
        items = {}
    return {
        "id": str(doc["_id"]),
        "ship_id": str(doc.get("ship_id")),
        "ship_name": doc.get("ship_name"),
        "ship_imo": doc.get("ship_imo"),
        "user_id": doc.get("user_id"),
        "user_display_name": doc.get("user_display_name") or settings.DEFAULT_DISPLAY_NAME,
        "disembarkation_date": doc.get("disembarkation_date"),
        "created_at": doc.get("created_at") or doc.get("date"),
        "cabin_type": doc.get("cabin_type"),
        "general_observation": doc.get("general_observation") or "",
        "items": {
            name: normalize_entry(entry) for name, entry in items.items()
            if isinstance(entry, dict)
        },
        "ship_info": normalize_ship_info(doc.get("ship_info")),
    }

def get_ship_or_404(ships: ShipStore, ship_id: str) -> dict:
    ship = ships.get(ship_id)
    if not ship:
        raise HTTPException(404, "Ship not found")
    return ship

# Routes
@app.get("/")
def root():
    return {"message": "Ship Rating App API"}

@app.get("/test")
def test_database(db=Depends(get_db)):
    try:
        collections = db.list_collection_names()
        return {"backend": "ok", "database": "ok", "collections": collections}
    except Exception as e:
        return {"backend": "ok", "database": f"error: {str(e)[:80]}"}

# Auth
@app.post("/auth/register")
def register(payload: RegisterRequest, db=Depends(get_db)):
    existing = db["user"].find_one({"email": payload.email})
    if existing:
        raise HTTPException(400, detail="Email already registered")
    user_doc = {
        "name": payload.name,
        "display_name": (payload.display_name or "").strip() or payload.name,
        "email": payload.email,
        "password_hash": hash_password(payload.password),
        "role": "pilot",
        "is_active": True,
        "created_at": datetime.now(timezone.utc),
        "updated_at": datetime.now(timezone.utc),
    }
    res = db["user"].insert_one(user_doc)
    user_doc["id"] = str(res.inserted_id)
    user_doc.pop("_id", None)
    user_doc.pop("password_hash", None)
    return user_doc

@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, db=Depends(get_db)):
    user = db["user"].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account disabled")
    access_token = create_access_token({"sub": str(user["_id"]), "role": user.get("role", "pilot")})
    user_out = {"id": str(user["_id"]), "name": user.get("name"), "display_name": user.get("display_name"), "email": user.get("email"), "role": user.get("role", "pilot")}
    return TokenResponse(access_token=access_token, user=user_out)

@app.get("/me")
def me(user=Depends(get_current_user)):
    return {"id": user["id"], "name": user.get("name"), "display_name": user.get("display_name"), "email": user.get("email"), "role": user.get("role")}

# Catalog
@app.get("/catalog")
def catalog():
    return {
        "version": CATALOG_VERSION,
        "criteria": [{"name": c.value, "key": AGGREGATE_KEYS[c]} for c in CRITERIA],
        "cabin_types": [t.value for t in CabinType],
    }

# Ships
@app.get("/ships", response_model=List[ShipOut])
def list_ships(q: Optional[str] = None, user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store)):
    return [serialize_ship(s) for s in ships.search(q or "")]

@app.get("/ships/names", response_model=List[str])
def ship_names(user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store)):
    names = set()
    for s in ships.list():
        for value in (s.get("name"), s.get("imo")):
            value = (value or "").strip()
            if value:
                names.add(value)
    return sorted(names)

@app.get("/ships/{ship_id}", response_model=ShipOut)
def get_ship(ship_id: str, user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store)):
    return serialize_ship(get_ship_or_404(ships, ship_id))

@app.get("/ships/{ship_id}/ratings", response_model=List[RatingOut])
def list_ship_ratings(ship_id: str, user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store), ratings: RatingStore = Depends(get_rating_store)):
    ship = get_ship_or_404(ships, ship_id)
    out = []
    for r in sort_by_recency(ratings.list_for_ship(ship["_id"])):
        r["ship_name"] = ship.get("name")
        r["ship_imo"] = ship.get("imo")
        out.append(serialize_rating(r))
    return out

# Ratings
@app.post("/ratings", response_model=SubmissionOut, status_code=201)
def create_rating(payload: RatingIn, user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store), ratings: RatingStore = Depends(get_rating_store)):
    ship_id, rating_id = submit_rating(ships, ratings, user, payload.model_dump())
    ship = get_ship_or_404(ships, ship_id)
    return {"ship": serialize_ship(ship), "rating_id": str(rating_id)}

@app.get("/ratings/mine", response_model=List[RatingOut])
def my_ratings(user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store), ratings: RatingStore = Depends(get_rating_store)):
    return [serialize_rating(r) for r in list_user_ratings(ships, ratings, user)]

@app.get("/ratings/{rating_id}", response_model=RatingOut)
def get_rating(rating_id: str, user=Depends(get_current_user), ships: ShipStore = Depends(get_ship_store), ratings: RatingStore = Depends(get_rating_store)):
    rating = ratings.get(rating_id)
    if not rating:
        raise HTTPException(404, "Rating not found")
    ship = ships.get(rating.get("ship_id")) or {}
    rating["ship_name"] = ship.get("name")
    rating["ship_imo"] = ship.get("imo")
    return serialize_rating(rating)

# Admin endpoints
@app.delete("/admin/ratings/{rating_id}")
def admin_delete_rating(rating_id: str, background_tasks: BackgroundTasks, user=Depends(require_role("admin")), ships: ShipStore = Depends(get_ship_store), ratings: RatingStore = Depends(get_rating_store)):
    deleted = ratings.delete(rating_id)
    if not deleted:
        raise HTTPException(404, "Rating not found")
    background_tasks.add_task(on_rating_deleted, ships, ratings, deleted["ship_id"], deleted["_id"])
    return {"deleted": True}

@app.post("/admin/recompute-means")
def admin_recompute_means(user=Depends(require_role("admin")), ships: ShipStore = Depends(get_ship_store), ratings: RatingStore = Depends(get_rating_store)):
    count = recompute_all(ships, ratings)
    return {"recomputed": count}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
