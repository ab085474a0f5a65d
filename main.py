import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo.database import Database

from content import CommentStore, PostStore, page_meta
from credentials import CredentialStore, public_user
from database import TIMEOUT_ERRORS, connect, ensure_indexes
from errors import AppError, ServiceUnavailable, ValidationFailed
from guard import AuthorizationGuard, Principal, get_principal, require_role
from log_config import configure_logging, request_id_middleware
from settings import Settings
from tokens import TokenService

logger = logging.getLogger("blog.api")


# -------------------------------------------------------------------
# Models
# -------------------------------------------------------------------
class RegisterIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileIn(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = None


class PasswordIn(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class PostCreateIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=50)
    excerpt: Optional[str] = Field(None, max_length=500)
    tags: List[str] = []
    featured_image: Optional[str] = None
    status: str = Field("published", pattern="^(draft|published)$")
    is_published: bool = True

    # trimmed before the length bounds are checked
    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Please provide a title")
        return v

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return [t.strip() for t in v if t and t.strip()]


class PostUpdateIn(PostCreateIn):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=50)
    tags: Optional[List[str]] = None
    status: Optional[str] = Field(None, pattern="^(draft|published)$")
    is_published: Optional[bool] = None


class CommentIn(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator("content", mode="before")
    @classmethod
    def _strip_content(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Comment cannot be empty")
        return v


class Pagination:
    def __init__(self, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
        self.page = page
        self.limit = limit


# -------------------------------------------------------------------
# Envelopes
# -------------------------------------------------------------------
def ok(message: Optional[str] = None, data: Any = None, status_code: int = 200, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def listing(items: List[Dict[str, Any]], total: int, p: Pagination) -> JSONResponse:
    return ok(data=items, **page_meta(total, p.page, p.limit, len(items)))


def services(request: Request) -> Any:
    return request.app.state


# -------------------------------------------------------------------
# Auth endpoints
# -------------------------------------------------------------------
auth = APIRouter(prefix="/api/auth", tags=["auth"])


@auth.post("/register")
def register(data: RegisterIn, state=Depends(services)):
    user = state.credentials.register(data.name, data.email, data.password)
    token = state.tokens.issue(user)
    return ok("User registered successfully", status_code=201, token=token, user=public_user(user))


@auth.post("/login")
def login(data: LoginIn, state=Depends(services)):
    user = state.credentials.verify(data.email, data.password)
    token = state.tokens.issue(user)
    return ok("Login successful", token=token, user=public_user(user))


@auth.get("/me")
def me(principal: Principal = Depends(get_principal)):
    return ok(user=public_user(principal.user))


@auth.put("/profile")
def update_profile(data: ProfileIn, principal: Principal = Depends(get_principal), state=Depends(services)):
    user = state.credentials.update_profile(principal.user, data.model_dump(exclude_unset=True))
    return ok("Profile updated successfully", user=public_user(user))


@auth.put("/password")
def change_password(data: PasswordIn, principal: Principal = Depends(get_principal), state=Depends(services)):
    state.credentials.change_password(principal.user, data.current_password, data.new_password)
    return ok("Password updated successfully")


@auth.delete("/account")
def delete_account(principal: Principal = Depends(get_principal), state=Depends(services)):
    state.credentials.delete(principal.user)
    return ok("Account deleted successfully")


# -------------------------------------------------------------------
# Post endpoints
# -------------------------------------------------------------------
posts = APIRouter(prefix="/api/posts", tags=["posts"])


@posts.get("")
def list_posts(
    p: Pagination = Depends(),
    search: Optional[str] = None,
    tags: Optional[str] = None,
    author: Optional[str] = None,
    state=Depends(services),
):
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    items, total = state.posts.list_published(p.page, p.limit, search=search, tags=tag_list, author=author)
    return listing(state.posts.present(items), total, p)


@posts.post("")
def create_post(data: PostCreateIn, principal: Principal = Depends(get_principal), state=Depends(services)):
    post = state.posts.create(principal, data.model_dump())
    return ok("Post created successfully", state.posts.present_one(post), status_code=201)


@posts.get("/my/posts")
def my_posts(p: Pagination = Depends(), principal: Principal = Depends(get_principal), state=Depends(services)):
    items, total = state.posts.list_by_author(principal.id, p.page, p.limit, include_drafts=True)
    return listing(state.posts.present(items), total, p)


@posts.get("/admin/all")
def all_posts(p: Pagination = Depends(), _: Principal = Depends(require_role("admin")), state=Depends(services)):
    items, total = state.posts.list_all(p.page, p.limit)
    return listing(state.posts.present(items), total, p)


@posts.get("/user/{user_id}")
def user_posts(user_id: str, p: Pagination = Depends(), state=Depends(services)):
    items, total = state.posts.list_by_author(user_id, p.page, p.limit)
    return listing(state.posts.present(items), total, p)


@posts.get("/{post_id}")
def get_post(post_id: str, state=Depends(services)):
    post = state.posts.view(post_id)
    return ok(data=state.posts.present_one(post))


@posts.put("/{post_id}")
def update_post(
    post_id: str, data: PostUpdateIn, principal: Principal = Depends(get_principal), state=Depends(services)
):
    post = state.posts.require(post_id)
    state.guard.authorize_ownership(principal, post)
    post = state.posts.update(post, data.model_dump(exclude_unset=True))
    return ok("Post updated successfully", state.posts.present_one(post))


@posts.delete("/{post_id}")
def delete_post(post_id: str, principal: Principal = Depends(get_principal), state=Depends(services)):
    post = state.posts.require(post_id)
    state.guard.authorize_ownership(principal, post)
    state.posts.delete(post)
    return ok("Post deleted successfully")


@posts.put("/{post_id}/like")
def like_post(post_id: str, principal: Principal = Depends(get_principal), state=Depends(services)):
    post = state.posts.require(post_id)
    post, liked = state.posts.toggle_like(post, principal.id)
    return ok("Post like toggled successfully", state.posts.present_one(post), liked=liked)


@posts.get("/{post_id}/comments")
def list_comments(post_id: str, p: Pagination = Depends(), state=Depends(services)):
    items, total = state.comments.list_top_level(post_id, p.page, p.limit)
    return listing(state.comments.present(items), total, p)


@posts.post("/{post_id}/comments")
def add_comment(
    post_id: str, data: CommentIn, principal: Principal = Depends(get_principal), state=Depends(services)
):
    comment = state.comments.create(principal, post_id, data.content)
    return ok("Comment added successfully", state.comments.present_one(comment), status_code=201)


# -------------------------------------------------------------------
# Comment endpoints
# -------------------------------------------------------------------
comments = APIRouter(prefix="/api/comments", tags=["comments"])


@comments.get("/user/{user_id}")
def user_comments(user_id: str, p: Pagination = Depends(), state=Depends(services)):
    items, total = state.comments.list_by_author(user_id, p.page, p.limit)
    return listing(state.comments.present(items), total, p)


@comments.get("/admin/all")
def all_comments(p: Pagination = Depends(), _: Principal = Depends(require_role("admin")), state=Depends(services)):
    items, total = state.comments.list_all(p.page, p.limit)
    return listing(state.comments.present(items), total, p)


@comments.get("/{comment_id}")
def get_comment(comment_id: str, state=Depends(services)):
    comment = state.comments.require_active(comment_id)
    return ok(data=state.comments.present_one(comment))


@comments.get("/{comment_id}/replies")
def list_replies(comment_id: str, p: Pagination = Depends(), state=Depends(services)):
    items, total = state.comments.list_replies(comment_id, p.page, p.limit)
    return listing(state.comments.present(items), total, p)


@comments.post("/{comment_id}/reply")
def reply(comment_id: str, data: CommentIn, principal: Principal = Depends(get_principal), state=Depends(services)):
    comment = state.comments.reply(principal, comment_id, data.content)
    return ok("Reply added successfully", state.comments.present_one(comment), status_code=201)


@comments.put("/{comment_id}")
def update_comment(
    comment_id: str, data: CommentIn, principal: Principal = Depends(get_principal), state=Depends(services)
):
    comment = state.comments.require_active(comment_id)
    state.guard.authorize_ownership(principal, comment)
    comment = state.comments.update(comment, data.content)
    return ok("Comment updated successfully", state.comments.present_one(comment))


@comments.delete("/{comment_id}")
def delete_comment(comment_id: str, principal: Principal = Depends(get_principal), state=Depends(services)):
    comment = state.comments.require_active(comment_id)
    state.guard.authorize_ownership(principal, comment)
    state.comments.soft_delete(comment)
    return ok("Comment deleted successfully")


@comments.put("/{comment_id}/like")
def like_comment(comment_id: str, principal: Principal = Depends(get_principal), state=Depends(services)):
    comment = state.comments.require_active(comment_id)
    comment, liked = state.comments.toggle_like(comment, principal.id)
    return ok("Comment like toggled successfully", state.comments.present_one(comment), liked=liked)


# -------------------------------------------------------------------
# Root + health
# -------------------------------------------------------------------
meta = APIRouter(tags=["meta"])


@meta.get("/")
def root():
    return {"app": "Blog API", "status": "ok"}


@meta.get("/health")
def health(state=Depends(services)):
    state.db.command("ping")
    return {"status": "ok", "database": state.db.name}


# -------------------------------------------------------------------
# Error handlers
# -------------------------------------------------------------------
def _error(status_code: int, message: str, errors: Optional[List[Dict[str, str]]] = None, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    extra: Dict[str, Any] = {}
    if isinstance(exc, ServiceUnavailable):
        extra["retryable"] = True
    return _error(exc.status_code, exc.message, getattr(exc, "errors", None), **extra)


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return handle_app_error(request, ValidationFailed(errors))


def handle_timeout(request: Request, exc: Exception) -> JSONResponse:
    logger.error("storage timeout on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return handle_app_error(request, ServiceUnavailable())


def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Server error")


# -------------------------------------------------------------------
# App factory
# -------------------------------------------------------------------
def create_app(db: Optional[Database] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if db is None:
        db = connect(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if settings.uses_default_secret:
            logger.warning("JWT_SECRET is not set; using the built-in development secret")
        ensure_indexes(db)
        yield

    application = FastAPI(title="Blog API", version="1.0.0", lifespan=lifespan)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(request_id_middleware)

    credentials = CredentialStore(db, settings.password_scheme, settings.bcrypt_rounds)
    tokens = TokenService(settings.jwt_secret, settings.jwt_expire_min)
    post_store = PostStore(db, credentials)

    application.state.settings = settings
    application.state.db = db
    application.state.credentials = credentials
    application.state.tokens = tokens
    application.state.guard = AuthorizationGuard(tokens, credentials)
    application.state.posts = post_store
    application.state.comments = CommentStore(db, post_store, credentials)

    application.add_exception_handler(AppError, handle_app_error)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    for error_type in TIMEOUT_ERRORS:
        application.add_exception_handler(error_type, handle_timeout)
    application.add_exception_handler(Exception, handle_unexpected)

    application.include_router(meta)
    application.include_router(auth)
    application.include_router(posts)
    application.include_router(comments)

    return application


_settings = Settings.from_env()
configure_logging(_settings.log_level)
app = create_app(settings=_settings)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", _settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
