"""FastAPI main application - Secret Santa admin API"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from loguru import logger

from src.config import settings
from src.data.schema import Match, Participant, ParticipantStats
from src.data.user_store import NotAllReadyError, UserExistsError, UserNotFoundError, UserStore
from src.matching import MatchingEngine, MatchingError


# ============================================
# Pydantic Models
# ============================================

class ParticipantsResponse(BaseModel):
    """All users with readiness statistics"""
    users: List[Participant]
    stats: ParticipantStats
    all_ready: bool


class GenerateMatchesResponse(BaseModel):
    """Response for match generation"""
    success: bool
    message: str
    attempts: int = 0
    matches: List[Match] = Field(default_factory=list)


class ResetMatchesResponse(BaseModel):
    success: bool
    message: str
    reset_count: int = 0


class FamilyGroupRequest(BaseModel):
    """Request to move a user into a family group"""
    family_group: int = Field(..., ge=0, description="Family group id, 0 = no group")


class AddUserRequest(BaseModel):
    """Request to create a user"""
    username: str = Field(..., min_length=1)
    email: Optional[str] = None
    family_group: int = Field(0, ge=0, description="Family group id, 0 = no group")
    is_admin: bool = False


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str = "1.0.0"
    users_file: str


# ============================================
# Dependencies
# ============================================

def get_user_store() -> UserStore:
    return UserStore(settings.users_file)


def get_matching_engine() -> MatchingEngine:
    return MatchingEngine()


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown

    Startup:
        - Report how many users the store currently holds
    """
    logger.info("Starting up Secret Santa API...")

    if not settings.users_file.exists():
        logger.warning(f"Users file not found: {settings.users_file}")
        logger.warning("API will start but there is nobody to match until users are added")
    else:
        stats = get_user_store().stats()
        logger.info(f"✅ Loaded {stats.total} participants ({stats.ready} ready) from {settings.users_file}")

    yield

    logger.info("✅ Secret Santa API shutdown complete")


# ============================================
# FastAPI App
# ============================================

app = FastAPI(
    title="Secret Santa API",
    description="Gift exchange admin backend with family-aware match generation",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Health Check
# ============================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint"""
    return HealthResponse(status="ok", users_file=str(settings.users_file))


# ============================================
# Admin Endpoints
# ============================================

@app.get("/api/v1/admin/participants", response_model=ParticipantsResponse, tags=["Admin"])
def list_participants(store: UserStore = Depends(get_user_store)):
    """
    List every user with readiness statistics

    Statistics only count non-admin users.
    """
    stats = store.stats()
    return ParticipantsResponse(users=store.get_users(), stats=stats, all_ready=stats.all_ready)


@app.post("/api/v1/admin/participants", response_model=Participant, status_code=201, tags=["Admin"])
def add_participant(request: AddUserRequest, store: UserStore = Depends(get_user_store)):
    """Create a user with the next free id"""
    extra = {"email": request.email} if request.email else {}
    try:
        return store.add_user(
            request.username,
            family_group=request.family_group,
            is_admin=request.is_admin,
            **extra
        )
    except UserExistsError as e:
        logger.warning(f"User creation refused: {e}")
        raise HTTPException(status_code=409, detail=str(e))


@app.delete("/api/v1/admin/participants/{user_id}", response_model=Participant, tags=["Admin"])
def delete_participant(user_id: int, store: UserStore = Depends(get_user_store)):
    """Remove a user"""
    try:
        return store.delete_user(user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")


@app.post("/api/v1/admin/generate-matches", response_model=GenerateMatchesResponse, tags=["Admin"])
def generate_matches(
    max_retries: Optional[int] = None,
    store: UserStore = Depends(get_user_store),
    engine: MatchingEngine = Depends(get_matching_engine)
):
    """
    Draw matches for all ready participants and persist them

    Fails with 409 while participants are not ready and with 422 when the
    draw itself is impossible. Stored users are untouched on failure.
    """
    try:
        result = store.run_matching(
            engine,
            max_retries=max_retries,
            require_all_ready=settings.require_all_ready
        )
    except NotAllReadyError as e:
        logger.warning(f"Match generation refused: {e.not_ready} participants not ready")
        raise HTTPException(status_code=409, detail=str(e))
    except MatchingError as e:
        logger.error(f"Match generation error: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return GenerateMatchesResponse(
        success=True,
        message=f"Successfully generated {len(result.matches)} matches!",
        attempts=result.attempts,
        matches=result.matches
    )


@app.post("/api/v1/admin/reset-matches", response_model=ResetMatchesResponse, tags=["Admin"])
def reset_matches(keep_ready: bool = True, store: UserStore = Depends(get_user_store)):
    """
    Clear all matches

    Args:
        keep_ready: Preserve ready flags (false also marks everybody not ready)
    """
    count = store.reset_matches(keep_ready=keep_ready)
    message = "Matches have been reset."
    if keep_ready:
        message += " Ready status preserved."
    return ResetMatchesResponse(success=True, message=message, reset_count=count)


@app.post("/api/v1/admin/participants/{user_id}/toggle-ready", response_model=Participant, tags=["Admin"])
def toggle_ready(user_id: int, store: UserStore = Depends(get_user_store)):
    """Flip a participant's ready flag"""
    try:
        return store.toggle_ready(user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")


@app.put("/api/v1/admin/participants/{user_id}/family-group", response_model=Participant, tags=["Admin"])
def set_family_group(
    user_id: int,
    request: FamilyGroupRequest,
    store: UserStore = Depends(get_user_store)
):
    """Assign a participant to a family group"""
    try:
        return store.set_family_group(user_id, request.family_group)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")


# ============================================
# Root Endpoint
# ============================================

@app.get("/", tags=["System"])
async def root():
    """
    Root endpoint - API info
    """
    return {
        "name": "Secret Santa API",
        "version": "1.0.0",
        "description": "Gift exchange admin backend",
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "participants": "/api/v1/admin/participants",
            "generate_matches": "/api/v1/admin/generate-matches"
        }
    }


# ============================================
# Run with: uvicorn src.api.main:app --reload
# ============================================
