"""
Comment threads

A comment belongs to one blog. Top-level comments have `is_reply=False` and no
parent; replies point at their parent and are listed in the parent's
`children`. Deleting a comment removes its whole subtree and the
notifications that reference it.
"""
import logging
from collections import deque
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, parse_object_id, populate, to_public
from errors import InvalidInputError, NotFoundError, PermissionDeniedError
from fanout import SideEffects
from schemas import BLOGS, COMMENTS, NOTIFICATIONS, USERS, Comment, Notification

logger = logging.getLogger(__name__)

PAGE_SIZE = 5
COMMENTER_FIELDS = {"personal_info.username": 1, "personal_info.fullname": 1, "personal_info.profile_img": 1}


class CommentService:

    def __init__(self, db: Database):
        self.db = db
        self.blogs = db[BLOGS]
        self.comments = db[COMMENTS]
        self.notifications = db[NOTIFICATIONS]

    def add_comment(self, blog_id: str, user_id: str, text: str, replying_to: Optional[str] = None,
                    notification_id: Optional[str] = None) -> Dict[str, Any]:
        if not text or not text.strip():
            raise InvalidInputError("Write something to leave a comment")

        blog_oid = parse_object_id(blog_id, "blog id")
        user_oid = parse_object_id(user_id, "user id")
        blog = self.blogs.find_one({"_id": blog_oid}, {"author": 1})
        if not blog:
            raise NotFoundError("Blog not found")

        parent = None
        if replying_to:
            parent = self.comments.find_one({"_id": parse_object_id(replying_to, "comment id")})
            if not parent:
                raise NotFoundError("The comment you are replying to no longer exists")
            if parent["blog_id"] != blog_oid:
                raise InvalidInputError("The comment you are replying to belongs to another blog", status_code=400)

        comment = Comment(
            blog_id=blog_oid,
            blog_author=blog["author"],
            comment=text,
            commented_by=user_oid,
            is_reply=parent is not None,
            parent=parent["_id"] if parent else None,
        )
        comment_oid = create_document(self.db, COMMENTS, comment)

        effects = SideEffects()
        context = {"blog": blog_oid, "comment": comment_oid}
        effects.run("blog_counters", self.blogs.update_one, {"_id": blog_oid}, {
            "$push": {"comments": comment_oid},
            "$inc": {"activity.total_comments": 1, "activity.total_parent_comments": 0 if parent else 1},
        }, context=context)

        notification = Notification(
            type="reply" if parent else "comment",
            blog=blog_oid,
            notification_for=blog["author"],
            user=user_oid,
            comment=comment_oid,
        )
        if parent:
            notification.replied_on_comment = parent["_id"]
            notification.notification_for = parent["commented_by"]
            effects.run("link_to_parent", self.comments.update_one,
                        {"_id": parent["_id"]}, {"$push": {"children": comment_oid}}, context=context)
            if notification_id:
                effects.run("answer_notification", self.notifications.update_one,
                            {"_id": parse_object_id(notification_id, "notification id")},
                            {"$set": {"reply": comment_oid}}, context=context)
        effects.run("notification", create_document, self.db, NOTIFICATIONS, notification, context=context)

        logger.info(f"Comment {comment_oid} added to blog {blog_oid} by {user_oid}")
        return {
            "id": str(comment_oid),
            "comment": comment.comment,
            "commented_at": comment.commented_at,
            "user_id": str(user_oid),
            "children": [],
            "side_effects": effects.as_dict(),
        }

    def get_blog_comments(self, blog_id: str, skip: int = 0) -> List[Dict[str, Any]]:
        """Top-level comments of a blog, newest first"""
        comments = list(
            self.comments.find({"blog_id": parse_object_id(blog_id, "blog id"), "is_reply": False})
            .sort("commented_at", DESCENDING)
            .skip(max(skip, 0))
            .limit(PAGE_SIZE)
        )
        populate(self.db, comments, "commented_by", USERS, COMMENTER_FIELDS)
        return [to_public(c) for c in comments]

    def get_replies(self, comment_id: str, skip: int = 0) -> List[Dict[str, Any]]:
        """Direct replies to a comment, newest first"""
        parent = self.comments.find_one({"_id": parse_object_id(comment_id, "comment id")}, {"children": 1})
        if not parent:
            raise NotFoundError("Comment not found")
        replies = list(
            self.comments.find({"_id": {"$in": parent.get("children", [])}}, {"blog_id": 0, "updated_at": 0})
            .sort("commented_at", DESCENDING)
            .skip(max(skip, 0))
            .limit(PAGE_SIZE)
        )
        populate(self.db, replies, "commented_by", USERS, COMMENTER_FIELDS)
        return [to_public(r) for r in replies]

    def delete_comment(self, comment_id: str, requester_id: str) -> Dict[str, Any]:
        comment_oid = parse_object_id(comment_id, "comment id")
        requester_oid = parse_object_id(requester_id, "user id")

        comment = self.comments.find_one({"_id": comment_oid}, {"commented_by": 1, "blog_author": 1})
        if not comment:
            raise NotFoundError("Comment not found")
        if requester_oid not in (comment["commented_by"], comment["blog_author"]):
            raise PermissionDeniedError("You can not delete this comment")

        effects = SideEffects()
        deleted = self._delete_thread(comment_oid, effects)
        logger.info(f"User {requester_oid} deleted comment {comment_oid} ({deleted} documents)")
        return {"deleted": deleted, "side_effects": effects.as_dict()}

    def _delete_thread(self, root: ObjectId, effects: SideEffects) -> int:
        """Delete `root` and every reply below it; returns how many comments went."""
        deleted = 0
        visited = set()
        pending = deque([root])
        while pending:
            comment_oid = pending.popleft()
            if comment_oid in visited:
                logger.warning(f"Comment {comment_oid} reached twice while deleting thread {root}")
                continue
            visited.add(comment_oid)

            comment = self.comments.find_one_and_delete({"_id": comment_oid})
            if not comment:
                continue
            deleted += 1
            context = {"comment": comment_oid, "blog": comment["blog_id"]}

            if comment.get("parent"):
                effects.run("unlink_from_parent", self.comments.update_one,
                            {"_id": comment["parent"]}, {"$pull": {"children": comment_oid}}, context=context)
            effects.run("delete_notification", self.notifications.delete_many,
                        {"comment": comment_oid}, context=context)
            effects.run("clear_reply_reference", self.notifications.update_many,
                        {"reply": comment_oid}, {"$unset": {"reply": ""}}, context=context)
            effects.run("blog_counters", self.blogs.update_one, {"_id": comment["blog_id"]}, {
                "$pull": {"comments": comment_oid},
                "$inc": {"activity.total_comments": -1,
                         "activity.total_parent_comments": 0 if comment.get("is_reply") else -1},
            }, context=context)

            pending.extend(comment.get("children", []))
        return deleted
