"""
Content graph: posts, comments and reply edges.

Comments form a tree through `parent_comment` (an id, never an embedded
document) and are traversed with indexed queries. Counters exposed to callers
(like_count, comment_count, replies_count) are computed when reading.
"""
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from credentials import CredentialStore
from database import COMMENTS, POSTS, to_object_id
from errors import NotFound
from guard import Principal
from likes import LikeToggle
from schemas import Comment, Post, utcnow

logger = logging.getLogger("blog.content")

EXCERPT_LENGTH = 200
POST_FIELDS = ("title", "content", "excerpt", "tags", "featured_image", "status", "is_published")

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]
OLDEST_FIRST = [("created_at", ASCENDING), ("_id", ASCENDING)]


def derive_excerpt(content: str) -> str:
    return content[:EXCERPT_LENGTH] + "..."


def page_meta(total: int, page: int, limit: int, count: int) -> Dict[str, int]:
    return {"count": count, "total": total, "page": page, "pages": math.ceil(total / limit)}


def paginate(
    collection: Collection,
    query: Mapping[str, Any],
    sort: Sequence[Tuple[str, int]],
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Dict[str, Any]], int]:
    skip = (page - 1) * limit
    items = list(collection.find(query).sort(list(sort)).skip(skip).limit(limit))
    total = collection.count_documents(query)
    return items, total


def _base_view(doc: Mapping[str, Any], authors: Mapping[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    out["author_id"] = doc.get("author")
    # null author means the account was deleted
    out["author"] = authors.get(doc.get("author"))
    out["like_count"] = len(doc.get("likes", []))
    return out


# -------------------------------------------------------------------
# Posts
# -------------------------------------------------------------------
class PostStore:
    def __init__(self, db: Database, users: CredentialStore):
        self.posts = db[POSTS]
        self.comments = db[COMMENTS]
        self.users = users
        self.likes = LikeToggle(self.posts, not_found="Post not found")

    def get(self, post_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(post_id)
        if oid is None:
            return None
        return self.posts.find_one({"_id": oid})

    def require(self, post_id: Any) -> Dict[str, Any]:
        post = self.get(post_id)
        if post is None:
            raise NotFound("Post not found")
        return post

    def create(self, principal: Principal, data: Mapping[str, Any]) -> Dict[str, Any]:
        fields = {k: v for k, v in data.items() if k in POST_FIELDS and v is not None}
        if not fields.get("excerpt"):
            fields["excerpt"] = derive_excerpt(fields["content"])
        doc = Post(author=principal.id, **fields).model_dump()
        res = self.posts.insert_one(doc)
        doc["_id"] = res.inserted_id
        logger.info("post %s created by %s", res.inserted_id, principal.id)
        return doc

    def view(self, post_id: Any) -> Dict[str, Any]:
        """Single-post read; every call counts one view, anonymous or not."""
        oid = to_object_id(post_id)
        post = None
        if oid is not None:
            post = self.posts.find_one_and_update(
                {"_id": oid},
                {"$inc": {"views": 1}},
                return_document=ReturnDocument.AFTER,
            )
        if post is None:
            raise NotFound("Post not found")
        return post

    def update(self, post: Mapping[str, Any], changes: Mapping[str, Any]) -> Dict[str, Any]:
        fields = {k: v for k, v in changes.items() if k in POST_FIELDS and v is not None}
        if "content" in fields and not fields.get("excerpt"):
            fields["excerpt"] = derive_excerpt(fields["content"])
        fields["updated_at"] = utcnow()
        updated = self.posts.find_one_and_update(
            {"_id": post["_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFound("Post not found")
        return updated

    def delete(self, post: Mapping[str, Any]) -> None:
        # comments keep pointing at the removed id; see DESIGN.md
        self.posts.delete_one({"_id": post["_id"]})
        logger.info("post %s deleted", post["_id"])

    def toggle_like(self, post: Mapping[str, Any], user_id: str) -> Tuple[Dict[str, Any], bool]:
        return self.likes.toggle(post, user_id)

    # -------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------
    def list_published(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        tags: Optional[List[str]] = None,
        author: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query: Dict[str, Any] = {"status": "published", "is_published": True}
        if search:
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"title": pattern}, {"content": pattern}, {"tags": pattern}]
        if tags:
            query["tags"] = {"$in": tags}
        if author:
            query["author"] = author
        return paginate(self.posts, query, NEWEST_FIRST, page, limit)

    def list_by_author(
        self, author_id: str, page: int = 1, limit: int = 10, include_drafts: bool = False
    ) -> Tuple[List[Dict[str, Any]], int]:
        query: Dict[str, Any] = {"author": author_id}
        if not include_drafts:
            query.update(status="published", is_published=True)
        return paginate(self.posts, query, NEWEST_FIRST, page, limit)

    def list_all(self, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return paginate(self.posts, {}, NEWEST_FIRST, page, limit)

    # -------------------------------------------------------------------
    # Derived fields
    # -------------------------------------------------------------------
    def comment_count(self, post_id: Any) -> int:
        return self.comment_counts([str(post_id)]).get(str(post_id), 0)

    def comment_counts(self, post_ids: Iterable[str]) -> Dict[str, int]:
        """Active top-level comments per post id."""
        ids = list(set(post_ids))
        if not ids:
            return {}
        rows = self.comments.aggregate([
            {"$match": {"post": {"$in": ids}, "is_active": True, "parent_comment": None}},
            {"$group": {"_id": "$post", "n": {"$sum": 1}}},
        ])
        return {row["_id"]: row["n"] for row in rows}

    def present(self, docs: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        authors = self.users.summaries(d.get("author") for d in docs)
        counts = self.comment_counts(str(d["_id"]) for d in docs)
        out = []
        for doc in docs:
            view = _base_view(doc, authors)
            view["comment_count"] = counts.get(str(doc["_id"]), 0)
            out.append(view)
        return out

    def present_one(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        return self.present([doc])[0]


# -------------------------------------------------------------------
# Comments
# -------------------------------------------------------------------
class CommentStore:
    def __init__(self, db: Database, posts: PostStore, users: CredentialStore):
        self.comments = db[COMMENTS]
        self.posts = posts
        self.users = users
        self.likes = LikeToggle(self.comments, not_found="Comment not found", scope={"is_active": True})

    def get(self, comment_id: Any) -> Optional[Dict[str, Any]]:
        """Any comment by id, soft-deleted ones included."""
        oid = to_object_id(comment_id)
        if oid is None:
            return None
        return self.comments.find_one({"_id": oid})

    def require_active(self, comment_id: Any, message: str = "Comment not found") -> Dict[str, Any]:
        comment = self.get(comment_id)
        if comment is None or not comment.get("is_active", True):
            raise NotFound(message)
        return comment

    def _insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        res = self.comments.insert_one(doc)
        doc["_id"] = res.inserted_id
        return doc

    def create(self, principal: Principal, post_id: Any, content: str) -> Dict[str, Any]:
        post = self.posts.require(post_id)
        doc = Comment(content=content, author=principal.id, post=str(post["_id"])).model_dump()
        self._insert(doc)
        logger.info("comment %s on post %s by %s", doc["_id"], doc["post"], principal.id)
        return doc

    def reply(self, principal: Principal, parent_id: Any, content: str) -> Dict[str, Any]:
        """Reply to an active comment; the reply always belongs to the parent's post."""
        parent = self.require_active(parent_id, "Parent comment not found")
        post = self.posts.require(parent["post"])
        doc = Comment(
            content=content,
            author=principal.id,
            post=str(post["_id"]),
            parent_comment=str(parent["_id"]),
        ).model_dump()
        self._insert(doc)
        logger.info("reply %s to comment %s by %s", doc["_id"], parent["_id"], principal.id)
        return doc

    def update(self, comment: Mapping[str, Any], content: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"updated_at": utcnow()}
        if content != comment.get("content"):
            now = utcnow()
            fields.update(content=content, is_edited=True, edited_at=now, updated_at=now)
        updated = self.comments.find_one_and_update(
            {"_id": comment["_id"], "is_active": True},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFound("Comment not found")
        return updated

    def soft_delete(self, comment: Mapping[str, Any]) -> None:
        res = self.comments.update_one(
            {"_id": comment["_id"], "is_active": True},
            {"$set": {"is_active": False, "updated_at": utcnow()}},
        )
        if res.matched_count == 0:
            raise NotFound("Comment not found")
        logger.info("comment %s soft-deleted", comment["_id"])

    def toggle_like(self, comment: Mapping[str, Any], user_id: str) -> Tuple[Dict[str, Any], bool]:
        return self.likes.toggle(comment, user_id)

    # -------------------------------------------------------------------
    # Listing (active comments only)
    # -------------------------------------------------------------------
    def list_top_level(self, post_id: Any, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        post = self.posts.require(post_id)
        query = {"post": str(post["_id"]), "is_active": True, "parent_comment": None}
        return paginate(self.comments, query, NEWEST_FIRST, page, limit)

    def list_replies(self, comment_id: Any, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        parent = self.get(comment_id)
        if parent is None:
            raise NotFound("Comment not found")
        query = {"parent_comment": str(parent["_id"]), "is_active": True}
        return paginate(self.comments, query, OLDEST_FIRST, page, limit)

    def list_by_author(self, author_id: str, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return paginate(self.comments, {"author": author_id, "is_active": True}, NEWEST_FIRST, page, limit)

    def list_all(self, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        return paginate(self.comments, {"is_active": True}, NEWEST_FIRST, page, limit)

    # -------------------------------------------------------------------
    # Derived fields
    # -------------------------------------------------------------------
    def replies_count(self, comment_id: Any) -> int:
        return self.replies_counts([str(comment_id)]).get(str(comment_id), 0)

    def replies_counts(self, comment_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(set(comment_ids))
        if not ids:
            return {}
        rows = self.comments.aggregate([
            {"$match": {"parent_comment": {"$in": ids}, "is_active": True}},
            {"$group": {"_id": "$parent_comment", "n": {"$sum": 1}}},
        ])
        return {row["_id"]: row["n"] for row in rows}

    def present(self, docs: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        authors = self.users.summaries(d.get("author") for d in docs)
        counts = self.replies_counts(str(d["_id"]) for d in docs)
        out = []
        for doc in docs:
            view = _base_view(doc, authors)
            view["replies_count"] = counts.get(str(doc["_id"]), 0)
            out.append(view)
        return out

    def present_one(self, doc: Mapping[str, Any]) -> Dict[str, Any]:
        return self.present([doc])[0]
