"""
Profile operations.

Every function takes the database handle and, where the operation acts on the
caller's own data, the caller's user id. Results are public documents with the
owning user populated as {id, name, avatar}.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import to_public
from exceptions import NotFoundError, ValidationError, field_error
from normalize import normalize_url, parse_skills
from schemas import Experience, ExperienceIn, ProfileFields, ProfileIn, Social

logger = logging.getLogger(__name__)

LEGACY_SKILLS_PADDING = os.getenv("LEGACY_SKILLS_PADDING", "false").lower() in ("1", "true", "yes")

NO_PROFILE_MSG = "There is no profile for this user"
PROFILE_NOT_FOUND_MSG = "Profile not found"


def _now():
    return datetime.now(timezone.utc)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _populate(db, profiles: List[dict]) -> List[dict]:
    user_ids = list({p["user"] for p in profiles})
    users = {
        u["_id"]: {"_id": u["_id"], "name": u.get("name"), "avatar": u.get("avatar")}
        for u in db["user"].find({"_id": {"$in": user_ids}}, {"name": 1, "avatar": 1})
    }
    out = []
    for p in profiles:
        p = dict(p)
        p["user"] = users.get(p["user"], p["user"])
        out.append(to_public(p))
    return out


def _populate_one(db, profile: dict) -> dict:
    return _populate(db, [profile])[0]


def build_profile_fields(body: ProfileIn, legacy_padding: Optional[bool] = None) -> ProfileFields:
    """Validate and normalize an upsert body. Raises ValidationError."""
    if legacy_padding is None:
        legacy_padding = LEGACY_SKILLS_PADDING
    errors = []
    if _blank(body.status):
        errors.append(field_error("status", "Status is required", body.status))

    def url(param, value):
        if value is None:
            return None
        try:
            return normalize_url(value)
        except ValueError:
            errors.append(field_error(param, "Please include a valid URL", value))
            return None

    website = url("website", body.website)
    social = Social(**{key: url(key, value) for key, value in body.social().model_dump().items()})
    if errors:
        raise ValidationError(errors)

    return ProfileFields(
        status=body.status,
        location=body.location,
        website=website,
        bio=body.bio,
        skills=parse_skills(body.skills, legacy_padding) if body.skills is not None else None,
        social=social,
    )


def upsert_profile(db, user_id: str, body: ProfileIn) -> dict:
    fields = build_profile_fields(body)
    owner = ObjectId(user_id)
    update_set = fields.model_dump(exclude_none=True)
    update_set["user"] = owner
    update_set["updated_at"] = _now()
    update = {"$set": update_set, "$setOnInsert": {"date": _now(), "experience": []}}

    try:
        profile = db["profile"].find_one_and_update(
            {"user": owner}, update, upsert=True, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        # A concurrent first upsert won the insert. Retrying still upserts, in
        # case that document is gone again by now.
        logger.info("Concurrent profile creation for user %s, retrying", user_id)
        profile = db["profile"].find_one_and_update(
            {"user": owner}, update, upsert=True, return_document=ReturnDocument.AFTER
        )
    if not profile:
        raise NotFoundError(NO_PROFILE_MSG)
    logger.info("Saved profile for user %s", user_id)
    return _populate_one(db, profile)


def get_my_profile(db, user_id: str) -> dict:
    profile = db["profile"].find_one({"user": ObjectId(user_id)})
    if not profile:
        raise NotFoundError(NO_PROFILE_MSG)
    return _populate_one(db, profile)


def list_profiles(db) -> List[dict]:
    return _populate(db, list(db["profile"].find({})))


def get_profile_by_user_id(db, user_id: str) -> dict:
    # A malformed id answers exactly like a missing profile.
    if not ObjectId.is_valid(user_id):
        raise NotFoundError(PROFILE_NOT_FOUND_MSG)
    profile = db["profile"].find_one({"user": ObjectId(user_id)})
    if not profile:
        raise NotFoundError(PROFILE_NOT_FOUND_MSG)
    return _populate_one(db, profile)


def delete_account(db, user_id: str) -> dict:
    """
    Remove the caller's posts, profile, user record and sessions, in that order.

    The steps are not transactional. If one fails, the earlier ones stay
    applied and the error propagates to the caller.
    """
    owner = ObjectId(user_id)
    step = "posts"
    try:
        posts = db["post"].delete_many({"user": owner})
        step = "profile"
        db["profile"].find_one_and_delete({"user": owner})
        step = "user"
        db["user"].find_one_and_delete({"_id": owner})
        step = "sessions"
        db["session"].delete_many({"user_id": user_id})
    except Exception:
        logger.error("Account deletion for user %s stopped at step %r", user_id, step)
        raise
    logger.info("Deleted account %s (%d posts)", user_id, posts.deleted_count)
    return {"msg": "User deleted"}


def add_experience(db, user_id: str, body: ExperienceIn) -> dict:
    errors = []
    if _blank(body.title):
        errors.append(field_error("title", "Title is required", body.title))
    if _blank(body.description):
        errors.append(field_error("description", "Description is required", body.description))
    if errors:
        raise ValidationError(errors)

    entry = {"_id": ObjectId(), **Experience(**body.model_dump()).model_dump()}
    update = {"$push": {"experience": {"$each": [entry], "$position": 0}}}
    return _update_experience(db, ObjectId(user_id), update)


def remove_experience(db, user_id: str, exp_id: str) -> dict:
    """Drop the entry with id exp_id. An unknown or malformed id leaves the list untouched."""
    owner = ObjectId(user_id)
    if not ObjectId.is_valid(exp_id):
        return get_my_profile(db, user_id)
    return _update_experience(db, owner, {"$pull": {"experience": {"_id": ObjectId(exp_id)}}})


def _update_experience(db, owner: ObjectId, update: dict) -> dict:
    # One atomic update per change, so concurrent edits to the list are not lost.
    update["$set"] = {"updated_at": _now()}
    profile = db["profile"].find_one_and_update(
        {"user": owner}, update, return_document=ReturnDocument.AFTER
    )
    if not profile:
        raise NotFoundError(NO_PROFILE_MSG)
    return _populate_one(db, profile)
