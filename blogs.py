"""
Blog lifecycle: create/update, discovery listings, reads and deletion.

Drafts skip publish validation and never show up in public listings.
"""
import logging
import re
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, parse_object_id, populate, to_public
from errors import ConflictError, DraftAccessError, InvalidInputError, NotFoundError, PermissionDeniedError
from fanout import SideEffects
from schemas import BLOGS, COMMENTS, NOTIFICATIONS, USERS, Blog

logger = logging.getLogger(__name__)

LATEST_PAGE_SIZE = 10
USER_BLOGS_PAGE_SIZE = 5
TRENDING_LIMIT = 5
DESCRIPTION_LIMIT = 200
TAG_LIMIT = 10
ID_ALPHABET = string.ascii_letters + string.digits + "_-"

AUTHOR_FIELDS = {"personal_info.profile_img": 1, "personal_info.username": 1, "personal_info.fullname": 1}
LISTING_FIELDS = {"blog_id": 1, "title": 1, "des": 1, "banner": 1, "activity": 1, "tags": 1, "published_at": 1,
                  "author": 1}


def slugify_title(title: str) -> str:
    return re.sub(r"\s+", "-", re.sub(r"[^a-zA-Z0-9]", " ", title).strip())


def generate_blog_id(title: str) -> str:
    return slugify_title(title) + "".join(secrets.choice(ID_ALPHABET) for _ in range(21))


def followed_first(blogs: List[Dict[str, Any]], following: List) -> List[Dict[str, Any]]:
    """Stable partition: blogs by followed authors, then the rest, each in original order."""
    followed = set(following)
    first = [b for b in blogs if b.get("author") in followed]
    rest = [b for b in blogs if b.get("author") not in followed]
    return first + rest


def validate_for_publish(des: str, banner: str, content: Dict[str, Any], tags: List[str]) -> None:
    if not des or len(des) > DESCRIPTION_LIMIT:
        raise InvalidInputError(f"You must provide blog description under {DESCRIPTION_LIMIT} characters")
    if not banner:
        raise InvalidInputError("You must provide a banner to publish the blog")
    if not (content or {}).get("blocks"):
        raise InvalidInputError("There must be some blog content to publish it")
    if not tags or len(tags) > TAG_LIMIT:
        raise InvalidInputError(f"Provide tags in order to publish the blog, Maximum {TAG_LIMIT}")


class BlogService:
    """Business logic for blog operations"""

    def __init__(self, db: Database):
        self.db = db
        self.blogs = db[BLOGS]
        self.users = db[USERS]

    def _listing(self, query: Dict[str, Any], skip: int, limit: int,
                 projection: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
        blogs = list(
            self.blogs.find(query, projection or LISTING_FIELDS)
            .sort("published_at", DESCENDING)
            .skip(max(skip, 0))
            .limit(limit)
        )
        return blogs

    def _public(self, blogs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        populate(self.db, blogs, "author", USERS, AUTHOR_FIELDS)
        for blog in blogs:
            blog.pop("_id", None)
        return [to_public(b) for b in blogs]

    def create_or_update(self, author_id: str, title: str, des: str = "", banner: str = "",
                         content: Optional[Dict[str, Any]] = None, tags: Optional[List[str]] = None,
                         draft: bool = False, blog_id: Optional[str] = None) -> Dict[str, Any]:
        tags = [tag.lower() for tag in (tags or [])]
        content = content or {}
        if not draft:
            validate_for_publish(des, banner, content, tags)
        if not title or not title.strip():
            raise InvalidInputError("You must provide a title")
        if len(des or "") > DESCRIPTION_LIMIT:
            raise InvalidInputError(f"You must provide blog description under {DESCRIPTION_LIMIT} characters")
        if len(tags) > TAG_LIMIT:
            raise InvalidInputError(f"Provide tags in order to publish the blog, Maximum {TAG_LIMIT}")

        author_oid = parse_object_id(author_id, "user id")
        effects = SideEffects()
        fields = {"title": title, "des": des or "", "banner": banner or "", "content": content, "tags": tags,
                  "draft": bool(draft)}

        if blog_id:
            existing = self.blogs.find_one({"blog_id": blog_id}, {"author": 1, "draft": 1})
            if not existing:
                raise NotFoundError("Blog not found")
            if existing["author"] != author_oid:
                raise PermissionDeniedError("You can only edit your own blogs")
            was_draft = bool(existing.get("draft"))
            if was_draft and not draft:
                fields["published_at"] = datetime.now(timezone.utc)
            fields["updated_at"] = datetime.now(timezone.utc)
            self.blogs.update_one({"_id": existing["_id"]}, {"$set": fields})
            # total_posts counts currently published blogs
            if was_draft != bool(draft):
                effects.run("author_total_posts", self.users.update_one, {"_id": author_oid},
                            {"$inc": {"account_info.total_posts": 1 if was_draft else -1}},
                            context={"blog": blog_id})
            logger.info(f"Blog {blog_id} updated by {author_oid}")
            return {"id": blog_id, "side_effects": effects.as_dict()}

        blog = Blog(blog_id=generate_blog_id(title), author=author_oid, **fields)
        try:
            blog_oid = create_document(self.db, BLOGS, blog)
        except DuplicateKeyError:
            raise ConflictError("A blog with this id already exists, try again")
        effects.run("author_blogs", self.users.update_one, {"_id": author_oid}, {
            "$inc": {"account_info.total_posts": 0 if draft else 1},
            "$push": {"blogs": blog_oid},
        }, context={"blog": blog.blog_id, "author": author_oid})
        logger.info(f"Blog {blog.blog_id} created by {author_oid} (draft={bool(draft)})")
        return {"id": blog.blog_id, "side_effects": effects.as_dict()}

    def latest(self, page: int = 1, following: Optional[List] = None) -> List[Dict[str, Any]]:
        """Newest published blogs; authors in `following` are moved to the front of the page."""
        blogs = self._listing({"draft": False}, (page - 1) * LATEST_PAGE_SIZE, LATEST_PAGE_SIZE)
        if following:
            blogs = followed_first(blogs, following)
        return self._public(blogs)

    def latest_count(self) -> int:
        return self.blogs.count_documents({"draft": False})

    def trending(self) -> List[Dict[str, Any]]:
        blogs = list(
            self.blogs.find({"draft": False}, {"blog_id": 1, "title": 1, "published_at": 1, "author": 1})
            .sort([("activity.total_reads", DESCENDING), ("activity.total_likes", DESCENDING),
                   ("published_at", DESCENDING)])
            .limit(TRENDING_LIMIT)
        )
        return self._public(blogs)

    @staticmethod
    def _search_query(tag: Optional[str] = None, query: Optional[str] = None, author: Optional[str] = None,
                      eliminate_blog: Optional[str] = None) -> Dict[str, Any]:
        find_query: Dict[str, Any] = {"draft": False}
        if tag:
            find_query["tags"] = tag.lower()
            if eliminate_blog:
                find_query["blog_id"] = {"$ne": eliminate_blog}
        elif query:
            find_query["title"] = {"$regex": re.escape(query), "$options": "i"}
        elif author:
            find_query["author"] = parse_object_id(author, "author id")
        return find_query

    def search(self, tag: Optional[str] = None, query: Optional[str] = None, author: Optional[str] = None,
               page: int = 1, limit: Optional[int] = None,
               eliminate_blog: Optional[str] = None) -> List[Dict[str, Any]]:
        limit = limit or LATEST_PAGE_SIZE
        find_query = self._search_query(tag, query, author, eliminate_blog)
        return self._public(self._listing(find_query, (page - 1) * limit, limit))

    def search_count(self, tag: Optional[str] = None, query: Optional[str] = None,
                     author: Optional[str] = None) -> int:
        return self.blogs.count_documents(self._search_query(tag, query, author))

    def get(self, blog_id: str, draft: bool = False, mode: Optional[str] = None) -> Dict[str, Any]:
        increment = 0 if mode == "edit" else 1
        blog = self.blogs.find_one_and_update(
            {"blog_id": blog_id},
            {"$inc": {"activity.total_reads": increment}},
            {"title": 1, "des": 1, "content": 1, "banner": 1, "activity": 1, "published_at": 1, "blog_id": 1,
             "tags": 1, "author": 1, "draft": 1},
            return_document=ReturnDocument.AFTER,
        )
        if not blog:
            raise NotFoundError("Blog not found")

        effects = SideEffects()
        effects.run("author_total_reads", self.users.update_one, {"_id": blog["author"]},
                    {"$inc": {"account_info.total_reads": increment}}, context={"blog": blog_id})

        if blog.get("draft") and not draft:
            raise DraftAccessError("you can not access draft blogs")

        populate(self.db, [blog], "author", USERS,
                 {"personal_info.fullname": 1, "personal_info.username": 1, "personal_info.profile_img": 1})
        return to_public(blog)

    def user_written(self, user_id: str, page: int = 1, draft: bool = False, query: str = "",
                     deleted_doc_count: int = 0) -> List[Dict[str, Any]]:
        find_query = {
            "author": parse_object_id(user_id, "user id"),
            "draft": bool(draft),
            "title": {"$regex": re.escape(query or ""), "$options": "i"},
        }
        skip = (page - 1) * USER_BLOGS_PAGE_SIZE - (deleted_doc_count or 0)
        blogs = self._listing(find_query, skip, USER_BLOGS_PAGE_SIZE,
                              {"title": 1, "banner": 1, "published_at": 1, "blog_id": 1, "activity": 1, "des": 1,
                               "draft": 1, "_id": 0})
        return [to_public(b) for b in blogs]

    def user_written_count(self, user_id: str, draft: bool = False, query: str = "") -> int:
        return self.blogs.count_documents({
            "author": parse_object_id(user_id, "user id"),
            "draft": bool(draft),
            "title": {"$regex": re.escape(query or ""), "$options": "i"},
        })

    def delete(self, blog_id: str, requester_id: str) -> Dict[str, Any]:
        requester_oid = parse_object_id(requester_id, "user id")
        blog = self.blogs.find_one({"blog_id": blog_id}, {"author": 1, "draft": 1})
        if not blog:
            raise NotFoundError("Blog not found")
        if blog["author"] != requester_oid:
            raise PermissionDeniedError("You can only delete your own blogs")
        self.blogs.delete_one({"_id": blog["_id"]})

        effects = SideEffects()
        context = {"blog": blog_id, "author": requester_oid}
        effects.run("notifications", self.db[NOTIFICATIONS].delete_many, {"blog": blog["_id"]}, context=context)
        effects.run("comments", self.db[COMMENTS].delete_many, {"blog_id": blog["_id"]}, context=context)
        effects.run("author_blogs", self.users.update_one, {"_id": requester_oid}, {
            "$pull": {"blogs": blog["_id"]},
            "$inc": {"account_info.total_posts": 0 if blog.get("draft") else -1},
        }, context=context)
        logger.info(f"Blog {blog_id} deleted by {requester_oid}")
        return {"status": "done", "side_effects": effects.as_dict()}
