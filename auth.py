"""Account creation, local and federated sign-in, password changes."""
import logging
import secrets
import string
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, parse_object_id
from errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from identity import FirebaseTokenVerifier
from schemas import USERS, PersonalInfo, User, default_profile_img
from security import PASSWORD_RULES, PASSWORD_REGEX, create_access_token, hash_password, is_valid_email, \
    validate_password, verify_password

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_letters + string.digits + "_-"


def random_suffix(length: int) -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def session_payload(user: Dict[str, Any]) -> Dict[str, Any]:
    """What the client keeps after any successful sign-in"""
    info = user["personal_info"]
    return {
        "accessToken": create_access_token(user["_id"]),
        "profile_img": info.get("profile_img", ""),
        "username": info["username"],
        "fullname": info["fullname"],
    }


class AuthService:
    """Business logic for signup and sign-in"""

    def __init__(self, db: Database, verifier: Optional[FirebaseTokenVerifier] = None):
        self.users = db[USERS]
        self.db = db
        self.verifier = verifier

    def generate_username(self, email: str) -> str:
        username = email.split("@")[0]
        if self.users.find_one({"personal_info.username": username}, {"_id": 1}):
            username += random_suffix(5)
        return username

    def _create_user(self, fullname: str, email: str, password_hash: Optional[str] = None,
                     profile_img: Optional[str] = None, google_auth: bool = False) -> Dict[str, Any]:
        username = self.generate_username(email)
        user = User(
            personal_info=PersonalInfo(
                fullname=fullname,
                email=email,
                password=password_hash,
                username=username,
                profile_img=profile_img or default_profile_img(username),
            ),
            google_auth=google_auth,
        )
        try:
            user_id = create_document(self.db, USERS, user)
        except DuplicateKeyError as e:
            if "email" in str(e):
                raise ConflictError("email already exists")
            raise ConflictError("username is already taken")
        logger.info(f"Created user {username} ({user_id}), google_auth={google_auth}")
        return self.users.find_one({"_id": user_id})

    def signup(self, fullname: str, email: str, password: str) -> Dict[str, Any]:
        if len(fullname or "") < 3:
            raise InvalidInputError("fullname must be at least 3 letters long", status_code=400)
        if not is_valid_email(email):
            raise InvalidInputError("Email is invalid")
        validate_password(password)

        if self.users.find_one({"personal_info.email": email}, {"_id": 1}):
            raise ConflictError("email already exists")

        user = self._create_user(fullname, email, password_hash=hash_password(password))
        return session_payload(user)

    def signin(self, email: str, password: str) -> Dict[str, Any]:
        user = self.users.find_one({"personal_info.email": email})
        if not user:
            raise InvalidInputError("Email not found")
        if user.get("google_auth"):
            raise PermissionDeniedError("Account was created using google. Try logging in with google")
        if not verify_password(password, user["personal_info"].get("password")):
            raise InvalidInputError("Incorrect password")
        return session_payload(user)

    def google_auth(self, token: str) -> Dict[str, Any]:
        claims = self.verifier.verify(token)
        email = claims["email"]
        name = claims.get("name") or email.split("@")[0]
        picture = (claims.get("picture") or "").replace("s96-c", "s384-c")

        user = self.users.find_one({"personal_info.email": email})
        if user:
            if not user.get("google_auth"):
                raise PermissionDeniedError("This email was signed in without google")
        else:
            user = self._create_user(name, email, profile_img=picture, google_auth=True)
        return session_payload(user)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        if not PASSWORD_REGEX.match(current_password or "") or not PASSWORD_REGEX.match(new_password or ""):
            raise InvalidInputError(PASSWORD_RULES)

        user = self.users.find_one({"_id": parse_object_id(user_id, "user id")})
        if not user:
            raise NotFoundError("User not found")
        if user.get("google_auth"):
            raise PermissionDeniedError("You can't change account's password because you logged in through google")
        if not verify_password(current_password, user["personal_info"].get("password")):
            raise InvalidInputError("Incorrect current password")

        self.users.update_one({"_id": user["_id"]},
                              {"$set": {"personal_info.password": hash_password(new_password)}})
        logger.info(f"Password changed for user {user_id}")
