from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime
import validators

from linker.resolver import is_valid_short_code

class UserBase(BaseModel):
    username: str
    email: str

class UserCreate(UserBase):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)

    @field_validator('email')
    def validate_email(cls, v):
        if not validators.email(v):
            raise ValueError("Недействительный email")
        return v

class UserLogin(BaseModel):
    username: str
    password: str

class UserResponse(UserBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class AuthResponse(BaseModel):
    token: str
    user: UserResponse

class Token(BaseModel):
    access_token: str
    token_type: str

class Profile(BaseModel):
    id: str
    username: str

class ShortCodeInfo(BaseModel):
    short_code: str
    is_primary: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class LinkBase(BaseModel):
    original_url: str = Field(..., description="Оригинальный URL для сокращения")

    @field_validator('original_url')
    def validate_url(cls, v):
        if not validators.url(v):
            raise ValueError("Недействительный URL")
        return v

class LinkCreate(LinkBase):
    short_codes: List[str] = Field(default_factory=list, description="Пользовательские короткие коды, первый - основной")
    domain_id: Optional[str] = None
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    analytics: bool = False
    expires_at: Optional[datetime] = Field(None, description="Время истечения срока действия ссылки")

    @field_validator('short_codes')
    def validate_short_codes(cls, v):
        for code in v:
            if not is_valid_short_code(code):
                raise ValueError(f"Недопустимый короткий код: {code}")
        return v

class LinkUpdate(BaseModel):
    original_url: Optional[str] = Field(None, description="Новый оригинальный URL")
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    analytics: Optional[bool] = None
    expires_at: Optional[datetime] = None

    @field_validator('original_url')
    def validate_url(cls, v):
        if v is not None and not validators.url(v):
            raise ValueError("Недействительный URL")
        return v

class LinkResponse(BaseModel):
    id: str
    short_code: Optional[str] = None
    short_url: Optional[str] = None
    short_codes: List[ShortCodeInfo] = []
    original_url: str
    domain_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    clicks: int
    analytics: bool
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class LinkListResponse(BaseModel):
    links: List[LinkResponse]

class FileUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    analytics: Optional[bool] = None
    is_public: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=6)
    expires_at: Optional[datetime] = None

class SharedFileResponse(BaseModel):
    id: str
    short_code: Optional[str] = None
    short_url: Optional[str] = None
    short_codes: List[ShortCodeInfo] = []
    domain_id: Optional[str] = None
    filename: str
    original_name: str
    mime_type: str
    file_size: int
    title: Optional[str] = None
    description: Optional[str] = None
    downloads: int
    analytics: bool
    is_public: bool
    password_protected: bool = False
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class FileListResponse(BaseModel):
    files: List[SharedFileResponse]

class FileInfo(BaseModel):
    id: str
    filename: str
    original_name: str
    mime_type: str
    file_size: int
    title: Optional[str] = None
    description: Optional[str] = None
    downloads: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class Message(BaseModel):
    message: str

class APITokenCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    expires_at: Optional[datetime] = None

class APITokenResponse(BaseModel):
    id: str
    user_id: str
    name: Optional[str] = None
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class APITokenCreated(BaseModel):
    token: str
    api_token: APITokenResponse

class APITokenList(BaseModel):
    tokens: List[APITokenResponse]

class AccessEventInfo(BaseModel):
    id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    country: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class LinkAnalytics(BaseModel):
    link_id: str
    clicks: List[AccessEventInfo]
    total: int

class FileAnalytics(BaseModel):
    file_id: str
    downloads: List[AccessEventInfo]
    total: int

class LinkAnalyticsSummary(BaseModel):
    link_id: str
    original_url: str
    title: Optional[str] = None
    short_code: Optional[str] = None
    total_clicks: int

class ClicksByDate(BaseModel):
    date: str
    clicks: int

class ReferrerStats(BaseModel):
    referer: str
    clicks: int

class CountryStats(BaseModel):
    country: str
    clicks: int

class UserAgentStats(BaseModel):
    user_agent: str
    clicks: int

class UserAnalytics(BaseModel):
    user_id: str
    total_links: int
    total_clicks: int
    clicks_today: int
    clicks_this_week: int
    clicks_this_month: int
    top_links: List[LinkAnalyticsSummary] = []
    recent_clicks: List[AccessEventInfo] = []
    clicks_by_date: List[ClicksByDate] = []
    top_referrers: List[ReferrerStats] = []
    top_countries: List[CountryStats] = []
    top_user_agents: List[UserAgentStats] = []

class UserFileStats(BaseModel):
    file_id: str
    filename: str
    original_name: str
    mime_type: str
    file_size: int
    total_downloads: int
    recent_downloads: int
    created_at: datetime

class UserFileAnalytics(BaseModel):
    user_id: str
    files: List[UserFileStats]
    total: int

class ReferrerCount(BaseModel):
    referer: str
    count: int

class FileAnalyticsSummary(BaseModel):
    file_id: str
    total_downloads: int
    downloads_today: int
    downloads_this_week: int
    downloads_this_month: int
    unique_visitors: int
    top_referrers: List[ReferrerCount] = []
