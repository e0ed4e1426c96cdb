"""
Pydantic schemas for news articles.

Defines the provider input model, the persisted snapshot records and the
client-facing API response.
"""

from pydantic import BaseModel, ConfigDict, Field


class NewsArticleIn(BaseModel):
    """Input model for a news article from NewsAPI."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = ""
    description: str | None = None
    url: str | None = ""
    source: dict | str | None = Field(default_factory=dict)
    author: str | None = None
    urlToImage: str | None = None
    publishedAt: str | None = None
    content: str | None = None


class NewsItem(BaseModel):
    """A normalized article as written to the news snapshot."""

    id: str
    title: str = ""
    url: str = ""
    source: str = ""
    source_name: str = ""
    image_url: str | None = None
    coins: list[str] = Field(default_factory=list)
    published_at: str | None = None
    excerpt: str = ""


class NewsSnapshot(BaseModel):
    """The complete document produced by one ingestion run."""

    generated_at: str | None = None
    count: int = 0
    items: list[NewsItem] = Field(default_factory=list)


class NewsItemOut(BaseModel):
    """Output model for a news article sent to the frontend."""

    id: str
    title: str = ""
    url: str = ""
    source: str = ""
    source_name: str = ""
    image: str | None = None
    coins: list[str] = Field(default_factory=list)
    publishedAt: str | None = None
    excerpt: str = ""


class NewsListResponse(BaseModel):
    """Response for the news feed endpoint."""

    at: str | None = None
    count: int = 0
    items: list[NewsItemOut] = Field(default_factory=list)
    error: str | None = None
    message: str | None = None
