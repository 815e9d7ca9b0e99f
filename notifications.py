"""Likes and the notification feed."""
import logging
from typing import Any, Dict, List

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, parse_object_id, populate, to_public
from errors import InvalidInputError, NotFoundError
from fanout import SideEffects
from schemas import BLOGS, COMMENTS, NOTIFICATIONS, USERS, Notification

logger = logging.getLogger(__name__)

PAGE_SIZE = 10
NOTIFICATION_FILTERS = ("all", "like", "comment", "reply", "follow")
USER_FIELDS = {"personal_info.fullname": 1, "personal_info.username": 1, "personal_info.profile_img": 1}


class NotificationService:

    def __init__(self, db: Database):
        self.db = db
        self.blogs = db[BLOGS]
        self.notifications = db[NOTIFICATIONS]

    def like_blog(self, blog_id: str, user_id: str, is_liked_by_user: bool) -> Dict[str, Any]:
        """Toggle a like. `is_liked_by_user` is the state before this call."""
        blog_oid = parse_object_id(blog_id, "blog id")
        user_oid = parse_object_id(user_id, "user id")
        increment = -1 if is_liked_by_user else 1

        blog = self.blogs.find_one_and_update({"_id": blog_oid}, {"$inc": {"activity.total_likes": increment}},
                                              return_document=ReturnDocument.AFTER)
        if not blog:
            raise NotFoundError("Blog not found")

        effects = SideEffects()
        context = {"blog": blog_oid, "user": user_oid}
        if not is_liked_by_user:
            like = Notification(type="like", blog=blog_oid, notification_for=blog["author"], user=user_oid)
            effects.run("like_notification", create_document, self.db, NOTIFICATIONS, like, context=context)
        else:
            effects.run("like_notification_removed", self.notifications.delete_many,
                        {"user": user_oid, "blog": blog_oid, "type": "like"}, context=context)

        return {"liked_by_user": not is_liked_by_user, "total_likes": blog["activity"]["total_likes"],
                "side_effects": effects.as_dict()}

    def is_liked_by_user(self, blog_id: str, user_id: str) -> bool:
        query = {"user": parse_object_id(user_id, "user id"), "type": "like",
                 "blog": parse_object_id(blog_id, "blog id")}
        return self.notifications.find_one(query, {"_id": 1}) is not None

    @staticmethod
    def _feed_query(user_oid, filter_type: str) -> Dict[str, Any]:
        if filter_type not in NOTIFICATION_FILTERS:
            raise InvalidInputError(f"Unknown notification filter '{filter_type}'", status_code=400)
        query = {"notification_for": user_oid, "user": {"$ne": user_oid}}
        if filter_type != "all":
            query["type"] = filter_type
        return query

    def has_new(self, user_id: str) -> bool:
        user_oid = parse_object_id(user_id, "user id")
        query = {"notification_for": user_oid, "seen": False, "user": {"$ne": user_oid}}
        return self.notifications.find_one(query, {"_id": 1}) is not None

    def list(self, user_id: str, page: int = 1, filter_type: str = "all",
             deleted_doc_count: int = 0) -> List[Dict[str, Any]]:
        """One page of the user's feed, newest first; the page is marked seen."""
        user_oid = parse_object_id(user_id, "user id")
        query = self._feed_query(user_oid, filter_type)

        skip = max((page - 1) * PAGE_SIZE - (deleted_doc_count or 0), 0)
        notifications = list(
            self.notifications.find(query, {"created_at": 1, "type": 1, "seen": 1, "reply": 1, "user": 1, "blog": 1,
                                            "comment": 1, "replied_on_comment": 1})
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(PAGE_SIZE)
        )

        populate(self.db, notifications, "user", USERS, USER_FIELDS)
        populate(self.db, notifications, "blog", BLOGS, {"title": 1, "blog_id": 1})
        for field in ("comment", "replied_on_comment", "reply"):
            populate(self.db, notifications, field, COMMENTS, {"comment": 1})

        page_ids = [n["_id"] for n in notifications]
        if page_ids:
            effects = SideEffects()
            effects.run("mark_seen", self.notifications.update_many,
                        {"_id": {"$in": page_ids}}, {"$set": {"seen": True}}, context={"user": user_oid})

        return [to_public(n) for n in notifications]

    def count(self, user_id: str, filter_type: str = "all") -> int:
        user_oid = parse_object_id(user_id, "user id")
        return self.notifications.count_documents(self._feed_query(user_oid, filter_type))
