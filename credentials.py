"""
Credential store: user records, password hashing and verification.

Raw passwords only ever live in function arguments; the `user` collection
holds the hash and the scheme (`algo`) that produced it.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError
from passlib.hash import bcrypt as bcrypt_hasher
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, to_object_id
from errors import DuplicateEmail, InvalidCredentials, NotFound
from schemas import User, utcnow

logger = logging.getLogger("blog.credentials")

PROFILE_FIELDS = ("name", "bio", "avatar_url")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Caller-facing view of a user document. Never includes the hash."""
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "bio": user.get("bio", ""),
        "avatar_url": user.get("avatar_url", ""),
        "created_at": user.get("created_at"),
    }


class CredentialStore:
    def __init__(self, db: Database, scheme: str = "bcrypt", bcrypt_rounds: int = 12):
        self.users = db[USERS]
        self.scheme = scheme
        self._bcrypt = bcrypt_hasher.using(rounds=bcrypt_rounds)
        self._argon2 = Argon2Hasher()
        # verified against when the email is unknown so both paths cost one hash check
        self._dummy_hash = self._hash("not-a-real-password")

    # -------------------------------------------------------------------
    # Hashing
    # -------------------------------------------------------------------
    def _hash(self, raw_password: str) -> Dict[str, str]:
        if self.scheme == "argon2":
            return {"password_hash": self._argon2.hash(raw_password), "algo": "argon2"}
        return {"password_hash": self._bcrypt.hash(raw_password), "algo": "bcrypt"}

    def _check(self, raw_password: str, pwd_hash: Optional[str], algo: str) -> bool:
        if algo == "argon2":
            try:
                return self._argon2.verify(pwd_hash, raw_password)
            except (VerificationError, InvalidHashError):
                return False
        try:
            return self._bcrypt.verify(raw_password, pwd_hash)
        except (ValueError, TypeError):
            return False

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return self.users.find_one({"_id": oid})

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.users.find_one({"email": normalize_email(email)})

    def summaries(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Author summaries keyed by id string; deleted users are simply absent."""
        oids = [oid for oid in (to_object_id(u) for u in set(user_ids)) if oid is not None]
        if not oids:
            return {}
        cursor = self.users.find(
            {"_id": {"$in": oids}}, {"name": 1, "email": 1, "avatar_url": 1}
        )
        return {
            str(u["_id"]): {
                "id": str(u["_id"]),
                "name": u.get("name"),
                "email": u.get("email"),
                "avatar_url": u.get("avatar_url", ""),
            }
            for u in cursor
        }

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def register(self, name: str, email: str, raw_password: str, role: str = "user") -> Dict[str, Any]:
        email = normalize_email(email)
        if self.users.find_one({"email": email}, {"_id": 1}):
            raise DuplicateEmail()

        doc = User(name=name, email=email, role=role, **self._hash(raw_password)).model_dump()
        try:
            res = self.users.insert_one(doc)
        except DuplicateKeyError:
            # lost a race with a concurrent registration of the same email
            raise DuplicateEmail()
        doc["_id"] = res.inserted_id
        logger.info("registered user %s", res.inserted_id)
        return doc

    def verify(self, email: str, raw_password: str) -> Dict[str, Any]:
        user = self.find_by_email(email)
        if user is None:
            self._check(raw_password, self._dummy_hash["password_hash"], self._dummy_hash["algo"])
            raise InvalidCredentials()
        if not self._check(raw_password, user.get("password_hash"), user.get("algo", "bcrypt")):
            logger.warning("failed login for user %s", user["_id"])
            raise InvalidCredentials()
        return user

    def change_password(self, user: Dict[str, Any], current_raw: str, new_raw: str) -> None:
        stored = self.users.find_one({"_id": user["_id"]})
        if stored is None:
            raise NotFound("User not found")
        if not self._check(current_raw, stored.get("password_hash"), stored.get("algo", "bcrypt")):
            raise InvalidCredentials("Current password is incorrect")
        self.set_password(stored["_id"], new_raw)

    def set_password(self, user_id: Any, new_raw: str) -> None:
        self.users.update_one(
            {"_id": user_id},
            {"$set": {**self._hash(new_raw), "updated_at": utcnow()}},
        )
        logger.info("password changed for user %s", user_id)

    def set_role(self, user_id: Any, role: str) -> None:
        self.users.update_one({"_id": user_id}, {"$set": {"role": role, "updated_at": utcnow()}})

    def update_profile(self, user: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
        fields = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}
        fields["updated_at"] = utcnow()
        updated = self.users.find_one_and_update(
            {"_id": user["_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFound("User not found")
        return updated

    def delete(self, user: Dict[str, Any]) -> None:
        # posts and comments keep their author id; see DESIGN.md
        self.users.delete_one({"_id": user["_id"]})
        logger.info("deleted user %s", user["_id"])
