import uuid
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, ForeignKey, Boolean, Text, CheckConstraint
)
from sqlalchemy.orm import relationship

from linker.database import Base
from linker.utils import utcnow

def generate_id() -> str:
    return str(uuid.uuid4())

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    links = relationship("Link", back_populates="owner", cascade="all, delete-orphan")
    files = relationship("File", back_populates="owner", cascade="all, delete-orphan")
    api_tokens = relationship("APIToken", back_populates="user", cascade="all, delete-orphan")

class Domain(Base):
    __tablename__ = "domains"

    id = Column(String(36), primary_key=True, default=generate_id)
    domain = Column(String(255), unique=True, nullable=False)
    is_default = Column(Boolean, default=False)
    enabled = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class ShortCode(Base):
    """Короткий код, указывающий ровно на одну ссылку или на один файл"""
    __tablename__ = "short_codes"
    __table_args__ = (
        CheckConstraint(
            "(link_id IS NULL AND file_id IS NOT NULL) OR (link_id IS NOT NULL AND file_id IS NULL)",
            name="ck_short_codes_single_owner"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    short_code = Column(String(32), unique=True, index=True, nullable=False)
    link_id = Column(String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=True, index=True)
    file_id = Column(String(36), ForeignKey("files.id", ondelete="CASCADE"), nullable=True, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    link = relationship("Link", back_populates="short_codes")
    file = relationship("File", back_populates="short_codes")

class Link(Base):
    __tablename__ = "links"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    domain_id = Column(String(36), ForeignKey("domains.id"), nullable=True)
    original_url = Column(Text, nullable=False)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    clicks = Column(Integer, default=0, nullable=False)
    analytics = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="links")
    domain = relationship("Domain")
    short_codes = relationship(
        "ShortCode", back_populates="link", cascade="all",
        order_by="[ShortCode.is_primary.desc(), ShortCode.created_at]"
    )
    click_events = relationship("Click", back_populates="link", cascade="all, delete-orphan")

    @property
    def primary_short_code(self):
        return next((code.short_code for code in self.short_codes if code.is_primary), None)

class File(Base):
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    domain_id = Column(String(36), ForeignKey("domains.id"), nullable=True)
    filename = Column(String(255), unique=True, nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    s3_key = Column(String(512), nullable=False)
    s3_bucket = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    downloads = Column(Integer, default=0, nullable=False)
    analytics = Column(Boolean, default=False, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    hashed_password = Column(String(100), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="files")
    domain = relationship("Domain")
    short_codes = relationship(
        "ShortCode", back_populates="file", cascade="all",
        order_by="[ShortCode.is_primary.desc(), ShortCode.created_at]"
    )
    download_events = relationship("FileDownload", back_populates="file", cascade="all, delete-orphan")

    @property
    def primary_short_code(self):
        return next((code.short_code for code in self.short_codes if code.is_primary), None)

class Click(Base):
    __tablename__ = "clicks"

    id = Column(String(36), primary_key=True, default=generate_id)
    link_id = Column(String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referer = Column(Text, nullable=True)
    country = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    link = relationship("Link", back_populates="click_events")

class FileDownload(Base):
    __tablename__ = "file_downloads"

    id = Column(String(36), primary_key=True, default=generate_id)
    file_id = Column(String(36), ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referer = Column(Text, nullable=True)
    country = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    file = relationship("File", back_populates="download_events")

class APIToken(Base):
    __tablename__ = "api_tokens"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="api_tokens")
