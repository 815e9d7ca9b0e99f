import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from auth import AuthService
from blogs import BlogService
from comments import CommentService
from config import get_settings
from database import ensure_indexes, get_db
from errors import BlogAppError
from identity import FirebaseTokenVerifier, get_identity_verifier
from images import CloudinaryUploader, get_image_uploader, save_upload
from notifications import NotificationService
from security import get_current_user_id, get_optional_user_id
from users import UserService

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error(f"Could not ensure indexes: {e}")
    else:
        logger.warning("DATABASE_URL not set; requests needing the database will fail")
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handling

@app.exception_handler(BlogAppError)
async def blog_app_error_handler(request: Request, exc: BlogAppError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error in {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


# Service dependencies

def auth_service(db: Database = Depends(get_db)) -> AuthService:
    return AuthService(db)


def blog_service(db: Database = Depends(get_db)) -> BlogService:
    return BlogService(db)


def comment_service(db: Database = Depends(get_db)) -> CommentService:
    return CommentService(db)


def notification_service(db: Database = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def user_service(db: Database = Depends(get_db)) -> UserService:
    return UserService(db)


class RequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Health
@app.get("/")
def read_root():
    return {"message": "Blog API running"}


@app.get("/test")
def health_check():
    """Reports whether the configured database answers; never fails itself."""
    try:
        collections = sorted(get_db().list_collection_names())
    except (BlogAppError, PyMongoError) as e:
        logger.warning(f"Health check could not reach the database: {e}")
        return {"backend": "up", "database": "unreachable", "detail": str(e)[:80]}
    return {"backend": "up", "database": settings.database_name, "collections": collections}


# Auth
class SignupRequest(RequestBody):
    fullname: str = ""
    email: str = ""
    password: str = ""


class SigninRequest(RequestBody):
    email: str
    password: str


class GoogleAuthRequest(RequestBody):
    access_token: str = Field(..., alias="accessToken")


class ChangePasswordRequest(RequestBody):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")


@app.post("/signup")
def signup(payload: SignupRequest, service: AuthService = Depends(auth_service)):
    return service.signup(payload.fullname, payload.email, payload.password)


@app.post("/signin")
def signin(payload: SigninRequest, service: AuthService = Depends(auth_service)):
    return service.signin(payload.email, payload.password)


@app.post("/google-auth")
def google_auth(payload: GoogleAuthRequest, db: Database = Depends(get_db),
                verifier: FirebaseTokenVerifier = Depends(get_identity_verifier)):
    return AuthService(db, verifier).google_auth(payload.access_token)


@app.post("/change-password")
def change_password(payload: ChangePasswordRequest, user_id: str = Depends(get_current_user_id),
                    service: AuthService = Depends(auth_service)):
    service.change_password(user_id, payload.current_password, payload.new_password)
    return {"status": "password Changed"}


# Images
@app.post("/blog-editor/upload-img")
def upload_img(img: UploadFile = File(...), user_id: str = Depends(get_current_user_id),
               uploader: CloudinaryUploader = Depends(get_image_uploader)):
    local_path = save_upload(img, settings.upload_dir)
    url = uploader.upload(local_path)
    logger.info(f"User {user_id} uploaded image {url}")
    return {"msg": "Item received", "image_url": url}


# Blogs
class LatestBlogsRequest(RequestBody):
    page: int = Field(1, ge=1)


class CreateBlogRequest(RequestBody):
    title: str = ""
    des: str = ""
    banner: str = ""
    content: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    draft: bool = False
    id: Optional[str] = None


class SearchBlogsRequest(RequestBody):
    tag: Optional[str] = None
    query: Optional[str] = None
    author: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1, le=50)
    eliminate_blog: Optional[str] = None


class SearchCountRequest(RequestBody):
    tag: Optional[str] = None
    query: Optional[str] = None
    author: Optional[str] = None


class GetBlogRequest(RequestBody):
    blog_id: str
    draft: bool = False
    mode: Optional[str] = None


class UserWrittenBlogsRequest(RequestBody):
    page: int = Field(1, ge=1)
    draft: bool = False
    query: str = ""
    deleted_doc_count: int = Field(0, ge=0, alias="deletedDocCount")


class UserWrittenCountRequest(RequestBody):
    draft: bool = False
    query: str = ""


class DeleteBlogRequest(RequestBody):
    blog_id: str


@app.post("/latest-blogs")
def latest_blogs(payload: LatestBlogsRequest, viewer_id: Optional[str] = Depends(get_optional_user_id),
                 db: Database = Depends(get_db)):
    following = UserService(db).following_ids(viewer_id)
    return {"blogs": BlogService(db).latest(payload.page, following)}


@app.post("/all-latest-blogs-count")
def all_latest_blogs_count(service: BlogService = Depends(blog_service)):
    return {"totalDocs": service.latest_count()}


@app.get("/tending-blogs")
@app.get("/trending-blogs")
def trending_blogs(service: BlogService = Depends(blog_service)):
    return {"blogs": service.trending()}


@app.post("/create-blog")
def create_blog(payload: CreateBlogRequest, user_id: str = Depends(get_current_user_id),
                service: BlogService = Depends(blog_service)):
    return service.create_or_update(user_id, payload.title, des=payload.des, banner=payload.banner,
                                    content=payload.content, tags=payload.tags, draft=payload.draft,
                                    blog_id=payload.id)


@app.post("/search-blogs")
def search_blogs(payload: SearchBlogsRequest, service: BlogService = Depends(blog_service)):
    blogs = service.search(tag=payload.tag, query=payload.query, author=payload.author, page=payload.page,
                           limit=payload.limit, eliminate_blog=payload.eliminate_blog)
    return {"blogs": blogs}


@app.post("/search-blogs-count")
def search_blogs_count(payload: SearchCountRequest, service: BlogService = Depends(blog_service)):
    return {"totalDocs": service.search_count(tag=payload.tag, query=payload.query, author=payload.author)}


@app.post("/get-blog")
def get_blog(payload: GetBlogRequest, service: BlogService = Depends(blog_service)):
    return {"blog": service.get(payload.blog_id, draft=payload.draft, mode=payload.mode)}


@app.post("/user-written-blogs")
def user_written_blogs(payload: UserWrittenBlogsRequest, user_id: str = Depends(get_current_user_id),
                       service: BlogService = Depends(blog_service)):
    blogs = service.user_written(user_id, page=payload.page, draft=payload.draft, query=payload.query,
                                 deleted_doc_count=payload.deleted_doc_count)
    return {"blogs": blogs}


@app.post("/user-written-blogs-count")
def user_written_blogs_count(payload: UserWrittenCountRequest, user_id: str = Depends(get_current_user_id),
                             service: BlogService = Depends(blog_service)):
    return {"totalDocs": service.user_written_count(user_id, draft=payload.draft, query=payload.query)}


@app.post("/delete-blog")
def delete_blog(payload: DeleteBlogRequest, user_id: str = Depends(get_current_user_id),
                service: BlogService = Depends(blog_service)):
    return service.delete(payload.blog_id, user_id)


# Likes
class BlogRef(RequestBody):
    id: str = Field(..., alias="_id")


class LikeBlogRequest(BlogRef):
    is_liked_by_user: bool = Field(False, alias="isLikedByUser")


@app.post("/like-blog")
def like_blog(payload: LikeBlogRequest, user_id: str = Depends(get_current_user_id),
              service: NotificationService = Depends(notification_service)):
    return service.like_blog(payload.id, user_id, payload.is_liked_by_user)


@app.post("/is-liked-by-user")
def is_liked_by_user(payload: BlogRef, user_id: str = Depends(get_current_user_id),
                     service: NotificationService = Depends(notification_service)):
    return {"result": service.is_liked_by_user(payload.id, user_id)}


# Comments
class AddCommentRequest(BlogRef):
    comment: str = ""
    replying_to: Optional[str] = Field(None, alias="replyingTo")
    notification_id: Optional[str] = None


class BlogCommentsRequest(RequestBody):
    blog_id: str
    skip: int = Field(0, ge=0)


class RepliesRequest(BlogRef):
    skip: int = Field(0, ge=0)


@app.post("/add-comment")
def add_comment(payload: AddCommentRequest, user_id: str = Depends(get_current_user_id),
                service: CommentService = Depends(comment_service)):
    return service.add_comment(payload.id, user_id, payload.comment, replying_to=payload.replying_to,
                               notification_id=payload.notification_id)


@app.post("/get-blog-comments")
def get_blog_comments(payload: BlogCommentsRequest, service: CommentService = Depends(comment_service)):
    return service.get_blog_comments(payload.blog_id, payload.skip)


@app.post("/get-replies")
def get_replies(payload: RepliesRequest, service: CommentService = Depends(comment_service)):
    return {"replies": service.get_replies(payload.id, payload.skip)}


@app.post("/delete-comment")
def delete_comment(payload: BlogRef, user_id: str = Depends(get_current_user_id),
                   service: CommentService = Depends(comment_service)):
    result = service.delete_comment(payload.id, user_id)
    return {"status": "done", **result}


# Users
class SearchUsersRequest(RequestBody):
    query: str = ""


class MinimalProfileRequest(RequestBody):
    user_id: str = Field(..., alias="userId")


class ProfileRequest(RequestBody):
    username: str


class UpdateProfileImgRequest(RequestBody):
    url: str


class UpdateProfileRequest(RequestBody):
    username: str = ""
    bio: str = ""
    social_links: Dict[str, str] = Field(default_factory=dict)


class FollowRequest(RequestBody):
    profile_id: str


@app.post("/search-users")
def search_users(payload: SearchUsersRequest, service: UserService = Depends(user_service)):
    return {"users": service.search_users(payload.query)}


@app.post("/get-minimal-profile")
def get_minimal_profile(payload: MinimalProfileRequest, service: UserService = Depends(user_service)):
    return {"user": service.get_minimal_profile(payload.user_id)}


@app.post("/get-profile")
def get_profile(payload: ProfileRequest, service: UserService = Depends(user_service)):
    return {"user": service.get_profile(payload.username)}


@app.post("/get-following")
def get_following(user_id: str = Depends(get_current_user_id), service: UserService = Depends(user_service)):
    return {"following": service.get_following(user_id)}


@app.post("/update-profile-img")
def update_profile_img(payload: UpdateProfileImgRequest, user_id: str = Depends(get_current_user_id),
                       service: UserService = Depends(user_service)):
    return {"profile_img": service.update_profile_img(user_id, payload.url)}


@app.post("/update-profile")
def update_profile(payload: UpdateProfileRequest, user_id: str = Depends(get_current_user_id),
                   service: UserService = Depends(user_service)):
    username = service.update_profile(user_id, payload.username, payload.bio, payload.social_links)
    return {"username": username}


@app.post("/handle-follow")
def handle_follow(payload: FollowRequest, user_id: str = Depends(get_current_user_id),
                  service: UserService = Depends(user_service)):
    return service.follow(user_id, payload.profile_id)


@app.post("/handle-unfollow")
def handle_unfollow(payload: FollowRequest, user_id: str = Depends(get_current_user_id),
                    service: UserService = Depends(user_service)):
    return service.unfollow(user_id, payload.profile_id)


# Notifications
class NotificationsRequest(RequestBody):
    page: int = Field(1, ge=1)
    filter: str = "all"
    deleted_doc_count: int = Field(0, ge=0, alias="deletedDocCount")


class NotificationsCountRequest(RequestBody):
    filter: str = "all"


@app.get("/new-notification")
def new_notification(user_id: str = Depends(get_current_user_id),
                     service: NotificationService = Depends(notification_service)):
    return {"new_notification_available": service.has_new(user_id)}


@app.post("/notifications")
def notifications(payload: NotificationsRequest, user_id: str = Depends(get_current_user_id),
                  service: NotificationService = Depends(notification_service)):
    return {"notifications": service.list(user_id, payload.page, payload.filter, payload.deleted_doc_count)}


@app.post("/all-notifications-count")
def all_notifications_count(payload: NotificationsCountRequest, user_id: str = Depends(get_current_user_id),
                            service: NotificationService = Depends(notification_service)):
    return {"totalDocs": service.count(user_id, payload.filter)}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 3000))
    uvicorn.run(app, host="0.0.0.0", port=port)
