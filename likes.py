"""
Like toggling shared by posts and comments.

Anything stored with a `likes` array of user ids is likeable. Each flip is a
single conditional update on one document ($addToSet when absent, $pull when
present), so concurrent likes from different users never overwrite each other.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.collection import Collection

from errors import NotFound, ServiceUnavailable

logger = logging.getLogger("blog.likes")


class LikeToggle:
    def __init__(
        self,
        collection: Collection,
        not_found: str = "Resource not found",
        scope: Optional[Mapping[str, Any]] = None,
        max_attempts: int = 5,
    ):
        self.collection = collection
        self.not_found = not_found
        # extra filter a document must match to be likeable, e.g. {"is_active": True}
        self.scope = dict(scope or {})
        self.max_attempts = max_attempts

    def toggle(self, entity: Mapping[str, Any], user_id: str) -> Tuple[Dict[str, Any], bool]:
        """Flip `user_id`'s membership in `entity.likes`.

        Returns the updated document and whether the user now likes it. The
        passed-in entity is only used for its id; its `likes` may be stale.
        """
        base = {"_id": entity["_id"], **self.scope}
        for _ in range(self.max_attempts):
            doc = self.collection.find_one_and_update(
                {**base, "likes": {"$ne": user_id}},
                {"$addToSet": {"likes": user_id}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                logger.info("%s %s liked by %s", self.collection.name, entity["_id"], user_id)
                return doc, True

            doc = self.collection.find_one_and_update(
                {**base, "likes": user_id},
                {"$pull": {"likes": user_id}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                logger.info("%s %s unliked by %s", self.collection.name, entity["_id"], user_id)
                return doc, False

            if self.collection.find_one(base, {"_id": 1}) is None:
                raise NotFound(self.not_found)
            # the same user flipped it in between both updates; try again

        raise ServiceUnavailable("Like could not be applied, please retry")
