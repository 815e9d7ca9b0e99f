"""Profiles, profile search and the follow graph."""
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, parse_object_id, populate, to_public
from errors import ConflictError, InvalidInputError, NotFoundError
from fanout import SideEffects
from schemas import NOTIFICATIONS, USERS, Notification, SocialLinks

logger = logging.getLogger(__name__)

BIO_LIMIT = 150
SEARCH_LIMIT = 50
MINIMAL_FIELDS = {"personal_info.fullname": 1, "personal_info.username": 1, "personal_info.profile_img": 1}
PRIVATE_FIELDS = {"personal_info.password": 0, "google_auth": 0, "updated_at": 0, "blogs": 0}


class UserService:

    def __init__(self, db: Database):
        self.db = db
        self.users = db[USERS]

    def search_users(self, query: str) -> List[Dict[str, Any]]:
        pattern = {"$regex": re.escape(query or ""), "$options": "i"}
        users = get_documents(self.db, USERS, {"personal_info.username": pattern}, limit=SEARCH_LIMIT,
                              projection={**MINIMAL_FIELDS, "_id": 0})
        return [to_public(u) for u in users]

    def get_minimal_profile(self, user_id: str) -> Dict[str, Any]:
        user = self.users.find_one({"_id": parse_object_id(user_id, "user id")}, MINIMAL_FIELDS)
        if not user:
            raise NotFoundError("User not found")
        return to_public(user)

    def get_profile(self, username: str) -> Dict[str, Any]:
        user = self.users.find_one({"personal_info.username": username}, PRIVATE_FIELDS)
        if not user:
            raise NotFoundError("User not found")
        follow = user.get("follow", {})
        for field in ("following", "followed_by"):
            refs = [{"user": ref} for ref in follow.get(field, [])]
            populate(self.db, refs, "user", USERS, {"personal_info.username": 1})
            follow[field] = [r["user"] for r in refs if r["user"]]
        return to_public(user)

    def get_following(self, user_id: str) -> List[str]:
        """Usernames the user follows"""
        user = self.users.find_one({"_id": parse_object_id(user_id, "user id")}, {"follow.following": 1})
        if not user:
            raise NotFoundError("User not found")
        ids = user.get("follow", {}).get("following", [])
        followed = get_documents(self.db, USERS, {"_id": {"$in": ids}}, projection={"personal_info.username": 1})
        return [u["personal_info"]["username"] for u in followed]

    def update_profile_img(self, user_id: str, url: str) -> str:
        if not url:
            raise InvalidInputError("You must provide an image url", status_code=400)
        result = self.users.update_one({"_id": parse_object_id(user_id, "user id")},
                                       {"$set": {"personal_info.profile_img": url}})
        if not result.matched_count:
            raise NotFoundError("User not found")
        return url

    @staticmethod
    def validate_social_links(social_links: Dict[str, str]) -> Dict[str, str]:
        known = SocialLinks.model_fields
        for platform, link in social_links.items():
            if platform not in known:
                raise InvalidInputError(f"{platform} is not a supported social link")
            if not link:
                continue
            parsed = urlparse(link)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise InvalidInputError("You must provide full social links with http(s) included")
            if platform != "website" and f"{platform}.com" not in parsed.hostname:
                raise InvalidInputError(f"{platform} link is invalid. You must enter a full link")
        return SocialLinks(**social_links).model_dump()

    def update_profile(self, user_id: str, username: str, bio: str, social_links: Dict[str, str]) -> str:
        if len(username or "") < 3:
            raise InvalidInputError("Username should be at least three letters long")
        if len(bio or "") > BIO_LIMIT:
            raise InvalidInputError(f"Bio should not be more than {BIO_LIMIT} characters")
        links = self.validate_social_links(social_links or {})

        user_oid = parse_object_id(user_id, "user id")
        taken = self.users.find_one({"personal_info.username": username, "_id": {"$ne": user_oid}}, {"_id": 1})
        if taken:
            raise ConflictError("Username is already taken")
        try:
            result = self.users.update_one({"_id": user_oid}, {"$set": {
                "personal_info.username": username,
                "personal_info.bio": bio or "",
                "social_links": links,
            }})
        except DuplicateKeyError:
            raise ConflictError("Username is already taken")
        if not result.matched_count:
            raise NotFoundError("User not found")
        return username

    def follow(self, user_id: str, target_id: str) -> Dict[str, Any]:
        user_oid = parse_object_id(user_id, "user id")
        target_oid = parse_object_id(target_id, "profile id")
        if user_oid == target_oid:
            raise InvalidInputError("You can not follow yourself")
        if not self.users.find_one({"_id": target_oid}, {"_id": 1}):
            raise NotFoundError("User not found")

        me = self.users.find_one_and_update({"_id": user_oid}, {"$addToSet": {"follow.following": target_oid}},
                                            return_document=ReturnDocument.BEFORE)
        if not me:
            raise NotFoundError("User not found")
        already_following = target_oid in me.get("follow", {}).get("following", [])

        effects = SideEffects()
        context = {"user": user_oid, "target": target_oid}
        effects.run("followed_by", self.users.update_one, {"_id": target_oid},
                    {"$addToSet": {"follow.followed_by": user_oid}}, context=context)
        if not already_following:
            notification = Notification(type="follow", notification_for=target_oid, user=user_oid)
            effects.run("follow_notification", create_document, self.db, NOTIFICATIONS, notification,
                        context=context)
        logger.info(f"User {user_oid} follows {target_oid}")
        return {"success": True, "side_effects": effects.as_dict()}

    def unfollow(self, user_id: str, target_id: str) -> Dict[str, Any]:
        user_oid = parse_object_id(user_id, "user id")
        target_oid = parse_object_id(target_id, "profile id")

        me = self.users.find_one_and_update({"_id": user_oid}, {"$pull": {"follow.following": target_oid}},
                                            {"personal_info.password": 0},
                                            return_document=ReturnDocument.AFTER)
        if not me:
            raise NotFoundError("User not found")

        effects = SideEffects()
        effects.run("followed_by", self.users.update_one, {"_id": target_oid},
                    {"$pull": {"follow.followed_by": user_oid}}, context={"user": user_oid, "target": target_oid})
        logger.info(f"User {user_oid} unfollowed {target_oid}")
        return {"data": to_public(me), "side_effects": effects.as_dict()}

    def following_ids(self, user_id: Optional[str]) -> List:
        if not user_id:
            return []
        user = self.users.find_one({"_id": parse_object_id(user_id, "user id")}, {"follow.following": 1})
        if not user:
            return []
        return user.get("follow", {}).get("following", [])
