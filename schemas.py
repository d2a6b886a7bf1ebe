"""
Database Schemas for DevConnector

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
Request bodies are declared below the collection models.
"""

from datetime import datetime
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Union

SOCIAL_KEYS = ("youtube", "twitter", "facebook", "instagram")


# Collections
class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Email address")
    avatar: Optional[str] = Field("", description="Avatar image URL")


class Social(BaseModel):
    youtube: Optional[str] = None
    twitter: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None


class Experience(BaseModel):
    title: str
    location: Optional[str] = None
    description: str


class ProfileFields(BaseModel):
    """Mutable profile fields written by an upsert. None leaves a field as is."""
    status: str = Field(..., min_length=1)
    location: Optional[str] = None
    website: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[List[str]] = None
    social: Social = Field(default_factory=Social)


class Post(BaseModel):
    user: str = Field(..., description="Author id")
    text: str = Field(..., min_length=1)
    name: Optional[str] = None
    avatar: Optional[str] = None


class AuthCode(BaseModel):
    email: EmailStr
    code: str
    expires_at: datetime
    used: bool = False


# Request bodies
class ProfileIn(BaseModel):
    status: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[Union[List[str], str]] = None
    youtube: Optional[str] = None
    twitter: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None

    def social(self) -> Social:
        return Social(**{key: getattr(self, key) for key in SOCIAL_KEYS})


class ExperienceIn(BaseModel):
    title: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


class PostIn(BaseModel):
    text: Optional[str] = None
