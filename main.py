import logging
import os
from contextlib import asynccontextmanager

from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

import database
import profile_service
from auth import RequestCodeBody, VerifyCodeBody, get_current_user_id, request_code, verify_code
from database import DatabaseUnavailable, create_document, get_db, get_documents, to_public
from exceptions import (
    ApiError,
    ServerError,
    ValidationError,
    api_error_handler,
    field_error,
    request_validation_handler,
)
from schemas import ExperienceIn, Post, PostIn, ProfileIn

DEBUG = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")]

logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = database.connect()
    if db is not None:
        try:
            database.ensure_indexes(db)
        except Exception:
            logger.exception("Could not create indexes")
    yield
    database.close()


app = FastAPI(title="DevConnector API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def database_unavailable_handler(request, exc):
    logger.error("Request to %s without a database: %s", request.url.path, exc)
    return PlainTextResponse("Server Error", status_code=500)


app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(DatabaseUnavailable, database_unavailable_handler)


# Helpers
class InsertResponse(BaseModel):
    id: str


def _server_error(what: str) -> ServerError:
    logger.exception("Failed to %s", what)
    return ServerError()


@app.get("/")
def read_root():
    return {"message": "API Running"}


# ---------------------------
# Passwordless Auth (Magic Code)
# ---------------------------

@app.post("/api/auth/request-code")
def auth_request_code(payload: RequestCodeBody, db=Depends(get_db)):
    try:
        return request_code(db, str(payload.email))
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("issue login code")


@app.post("/api/auth/verify")
def auth_verify(payload: VerifyCodeBody, db=Depends(get_db)):
    try:
        return verify_code(db, payload)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("verify login code")


# ---------------------------
# Profiles
# ---------------------------

@app.get("/api/profile/me")
def get_my_profile(user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    try:
        return profile_service.get_my_profile(db, user_id)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("load current profile")


@app.post("/api/profile")
def create_or_update_profile(body: ProfileIn, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    try:
        return profile_service.upsert_profile(db, user_id, body)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("save profile")


@app.get("/api/profile")
def list_profiles(db=Depends(get_db)):
    try:
        return profile_service.list_profiles(db)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("list profiles")


@app.get("/api/profile/user/{user_id}")
def get_profile_by_user(user_id: str, db=Depends(get_db)):
    try:
        return profile_service.get_profile_by_user_id(db, user_id)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("load profile by user id")


@app.delete("/api/profile")
def delete_account(user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    try:
        return profile_service.delete_account(db, user_id)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("delete account")


@app.put("/api/profile/experience")
def add_experience(body: ExperienceIn, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    try:
        return profile_service.add_experience(db, user_id, body)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("add experience")


@app.delete("/api/profile/experience/{exp_id}")
def delete_experience(exp_id: str, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    try:
        return profile_service.remove_experience(db, user_id, exp_id)
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("remove experience")


# ---------------------------
# Posts
# ---------------------------

@app.post("/api/posts", response_model=InsertResponse)
def create_post(body: PostIn, user_id: str = Depends(get_current_user_id), db=Depends(get_db)):
    if not body.text or not body.text.strip():
        raise ValidationError([field_error("text", "Text is required", body.text)])
    try:
        author = db["user"].find_one({"_id": ObjectId(user_id)}) or {}
        post = Post(user=user_id, text=body.text, name=author.get("name"), avatar=author.get("avatar"))
        data = post.model_dump()
        data["user"] = ObjectId(user_id)
        inserted_id = create_document(db, "post", data)
        return {"id": inserted_id}
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("create post")


@app.get("/api/posts")
def list_posts(db=Depends(get_db)):
    try:
        docs = get_documents(db, "post", {}, limit=100)
        docs_sorted = sorted(docs, key=lambda d: d.get("created_at", 0), reverse=True)
        return [to_public(d) for d in docs_sorted]
    except (HTTPException, ApiError):
        raise
    except Exception:
        raise _server_error("list posts")


@app.get("/api/health")
def health():
    """Report whether the database is configured and reachable."""
    response = {
        "backend": "running",
        "database": "not available",
        "database_url": "set" if os.getenv("DATABASE_URL") else "not set",
        "database_name": "set" if os.getenv("DATABASE_NAME") else "not set",
        "collections": [],
    }
    db = database.db
    if db is None:
        return response
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "connected"
    except Exception as e:
        logger.warning("Health check could not list collections: %s", e)
        response["database"] = f"error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 5000))
    uvicorn.run(app, host="0.0.0.0", port=port)
