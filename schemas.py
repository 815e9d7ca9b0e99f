"""
Database Schemas for the Blog platform

Each Pydantic model corresponds to a MongoDB collection.

Collections:
- users: identity, profile, follow graph and aggregate counters
- blogs: blog posts with content, tags and activity counters
- comments: threaded comments (parent/children links)
- notifications: like/comment/reply/follow events
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

USERS = "users"
BLOGS = "blogs"
COMMENTS = "comments"
NOTIFICATIONS = "notifications"

PROFILE_IMG_COLLECTIONS = ["notionists-neutral", "adventurer-neutral", "fun-emoji"]
PROFILE_IMG_NAMES = ["Garfield", "Tinkerbell", "Annie", "Loki", "Cleo", "Angel", "Bob", "Mia", "Coco", "Gracie",
                     "Bear", "Bella", "Abby", "Harley", "Cali", "Leo", "Luna", "Jack", "Felix", "Kiki"]

NotificationType = Literal["like", "comment", "reply", "follow"]


def _now():
    return datetime.now(timezone.utc)


def default_profile_img(seed: str) -> str:
    """Pick a generated avatar for a new account, stable per username."""
    total = sum(ord(c) for c in seed)
    collection = PROFILE_IMG_COLLECTIONS[total % len(PROFILE_IMG_COLLECTIONS)]
    name = PROFILE_IMG_NAMES[total % len(PROFILE_IMG_NAMES)]
    return f"https://api.dicebear.com/6.x/{collection}/svg?seed={name}"


class Document(BaseModel):
    """Base for stored documents; ObjectId references are kept as-is."""
    model_config = ConfigDict(arbitrary_types_allowed=True)


class PersonalInfo(BaseModel):
    fullname: str
    email: EmailStr
    password: Optional[str] = Field(None, description="Salted hash; absent for federated accounts")
    username: str
    bio: str = Field("", max_length=150)
    profile_img: str = ""


class SocialLinks(BaseModel):
    youtube: str = ""
    instagram: str = ""
    facebook: str = ""
    twitter: str = ""
    github: str = ""
    website: str = ""


class AccountInfo(BaseModel):
    total_posts: int = Field(0, ge=0)
    total_reads: int = Field(0, ge=0)


class Follow(Document):
    following: List[ObjectId] = Field(default_factory=list)
    followed_by: List[ObjectId] = Field(default_factory=list)


class User(Document):
    personal_info: PersonalInfo
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    account_info: AccountInfo = Field(default_factory=AccountInfo)
    follow: Follow = Field(default_factory=Follow)
    google_auth: bool = False
    blogs: List[ObjectId] = Field(default_factory=list)
    joined_at: datetime = Field(default_factory=_now)


class Activity(BaseModel):
    total_likes: int = 0
    total_comments: int = 0
    total_reads: int = 0
    total_parent_comments: int = 0


class Blog(Document):
    blog_id: str = Field(..., description="Human readable unique id")
    title: str
    banner: str = ""
    des: str = Field("", max_length=200)
    content: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    author: ObjectId
    activity: Activity = Field(default_factory=Activity)
    comments: List[ObjectId] = Field(default_factory=list)
    draft: bool = False
    published_at: datetime = Field(default_factory=_now)


class Comment(Document):
    blog_id: ObjectId = Field(..., description="ObjectId of the blog")
    blog_author: ObjectId
    comment: str
    children: List[ObjectId] = Field(default_factory=list)
    commented_by: ObjectId
    is_reply: bool = False
    parent: Optional[ObjectId] = None
    commented_at: datetime = Field(default_factory=_now)


class Notification(Document):
    type: NotificationType
    blog: Optional[ObjectId] = None
    notification_for: ObjectId
    user: ObjectId
    comment: Optional[ObjectId] = None
    reply: Optional[ObjectId] = None
    replied_on_comment: Optional[ObjectId] = None
    seen: bool = False
