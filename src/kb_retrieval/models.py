from pydantic import BaseModel, Field, field_validator

MIN_TEXT_CHARS = 10
MAX_TEXT_CHARS = 200_000
MAX_API_TOP_K = 10
DEFAULT_API_TOP_K = 5


class AddTextRequest(BaseModel):
    """Plain text to split, embed and add to the knowledge base"""

    title: str | None = Field(default=None, description="Optional display title")
    text: str | None = Field(default="", description="Document body")

    @field_validator("text")
    @classmethod
    def text_or_empty(cls, value: str | None) -> str:
        return value if value is not None else ""


class SearchRequest(BaseModel):
    """Query against the knowledge base"""

    query: str | None = Field(default="", description="Free-text query")
    k: int | None = Field(
        default=DEFAULT_API_TOP_K, description="Number of documents to return, clamped to [1, 10]"
    )

    @field_validator("query")
    @classmethod
    def strip_query(cls, value: str | None) -> str:
        return (value or "").strip()

    @field_validator("k")
    @classmethod
    def clamp_k(cls, value: int | None) -> int:
        if value is None:
            value = DEFAULT_API_TOP_K
        return max(1, min(MAX_API_TOP_K, value))


class StatsResponse(BaseModel):
    """Index size summary"""

    dimensions: int
    chunk_count: int
    document_count: int


class AddTextResponse(BaseModel):
    """Result of an ingestion request"""

    document_id: str
    chunks_added: int
    stats: StatsResponse


class SearchItem(BaseModel):
    """One matched document with its assembled excerpt"""

    document_id: str
    title: str | None
    text: str
    score: float


class SearchResponse(BaseModel):
    """Ranked documents for a query"""

    query: str
    items: list[SearchItem]
