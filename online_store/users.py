"""
Online Store — ユーザー ID 管理

登録と認証情報の検証だけを行う協力者。パスワードはソルト付き
PBKDF2-SHA256 で保存する。トークンの発行・検証はこのサービスの
外側（認証エッジ）の責務。
"""

import hashlib
import hmac
import logging
import secrets

from sqlalchemy import DateTime, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import EmailTaken, InvalidCredentials, InvalidInput, TransientInfra
from .events import UserLoggedIn, UserRegistered
from .models import User
from .publisher import EventPublisher

logger = logging.getLogger(__name__)

_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), _ITERATIONS
    ).hex()
    return f"pbkdf2_sha256${_ITERATIONS}${salt}${digest}"


def check_password(password: str, stored: str) -> bool:
    try:
        _, iterations, salt, digest = stored.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if rounds < 1:
        return False
    candidate = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), rounds
    ).hex()
    return hmac.compare_digest(candidate, digest)


class UserDirectory:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher,
    ):
        self.session_factory = session_factory
        self.publisher = publisher

    async def register(self, email: str, password: str) -> User:
        email = email.strip().lower()
        if "@" not in email:
            raise InvalidInput("a valid email is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    result = await session.execute(
                        text("""
                            INSERT INTO users (email, password_hash)
                            VALUES (:email, :password_hash)
                            RETURNING id, email, created_at
                        """).columns(created_at=DateTime),
                        {"email": email, "password_hash": hash_password(password)},
                    )
                    row = result.fetchone()
            except IntegrityError as e:
                raise EmailTaken("email already registered") from e
            except SQLAlchemyError as e:
                raise TransientInfra("failed to create user") from e

        user = User(id=row.id, email=row.email, created_at=row.created_at)
        logger.info("User %d registered", user.id)
        await self.publisher.emit(UserRegistered(user_id=user.id, email=user.email))
        return user

    async def verify(self, email: str, password: str) -> User:
        """未知のメールとパスワード違いは区別しない。"""
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    text("""
                        SELECT id, email, password_hash, created_at
                        FROM users WHERE email = :email
                    """).columns(created_at=DateTime),
                    {"email": email.strip().lower()},
                )
                row = result.fetchone()
            except SQLAlchemyError as e:
                raise TransientInfra("failed to load user") from e

        if not row or not check_password(password, row.password_hash):
            raise InvalidCredentials("invalid email or password")

        user = User(id=row.id, email=row.email, created_at=row.created_at)
        await self.publisher.emit(UserLoggedIn(user_id=user.id, email=user.email))
        return user
