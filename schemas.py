"""
Database Schemas for the blog API

Each Pydantic model maps to a MongoDB collection using the lowercase
class name as the collection name. References to other documents
(author, post, parent_comment, likes) are stored as id strings.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ROLES = ("user", "admin")


class User(BaseModel):
    """
    Collection: "user"
    """
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Unique email address, stored lowercased")
    password_hash: str = Field(..., description="Password hash (bcrypt/argon2)")
    algo: str = Field("bcrypt", description="Scheme that produced password_hash")
    role: str = Field("user", pattern=f"^({'|'.join(ROLES)})$")
    bio: str = Field("", description="Short bio")
    avatar_url: str = Field("", description="Avatar image URL")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Post(BaseModel):
    """
    Collection: "post"
    comment_count and like_count are computed at read time, never stored.
    """
    title: str
    content: str
    excerpt: str = ""
    author: str
    tags: List[str] = []
    featured_image: str = ""
    status: str = Field("published", pattern="^(draft|published)$")
    is_published: bool = True
    views: int = 0
    likes: List[str] = []
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Comment(BaseModel):
    """
    Collection: "comment"
    A null parent_comment marks a top-level comment; otherwise it is a reply
    and `post` is the parent's post.
    """
    content: str
    author: str
    post: str
    parent_comment: Optional[str] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    likes: List[str] = []
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
