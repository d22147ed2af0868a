import uuid
from enum import Enum
from typing import Dict, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

# Default settings for capture options
DEFAULT_SETTINGS = {
    "width": 1280,
    "height": 800,
    "full_page": False,
    "image_type": "jpeg",
    "quality": None,
    "wait_until": "load",
    "timeout": 30000,
    "delay": 0,
    "paper_format": "A4",
    "landscape": False,
    "print_background": True,
    "scale": 1.0,
}


class CaptureFormat(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    CONTENT = "content"
    PERFORMANCE = "performance"


# Formats served by POST /export/{format}
EXPORT_FORMATS = (CaptureFormat.IMAGE, CaptureFormat.PDF, CaptureFormat.CONTENT)


class PdfMargin(BaseModel):
    model_config = ConfigDict(frozen=True)

    top: Optional[str] = None
    right: Optional[str] = None
    bottom: Optional[str] = None
    left: Optional[str] = None


class CaptureOptions(BaseModel):
    # camelCase keys on the wire, snake_case field names accepted as well
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: Optional[str] = Field(None, description="URL of the page to render")
    html: Optional[str] = Field(None, description="Raw HTML to render instead of a URL")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers sent with every request")
    width: int = Field(DEFAULT_SETTINGS["width"], ge=1, le=7680, description="Viewport width in pixels")
    height: int = Field(DEFAULT_SETTINGS["height"], ge=1, le=4320, description="Viewport height in pixels")
    wait_until: Literal["load", "domcontentloaded", "networkidle"] = Field(DEFAULT_SETTINGS["wait_until"], alias="waitUntil", description="When to consider navigation succeeded")
    wait_for_selector: Optional[str] = Field(None, alias="waitForSelector", description="CSS selector to wait for before capture")
    wait_for_function: Optional[str] = Field(None, alias="waitForFunction", description="JavaScript predicate to wait for before capture")
    delay: int = Field(DEFAULT_SETTINGS["delay"], ge=0, le=120000, description="Extra delay after readiness before capture (milliseconds)")
    timeout: int = Field(DEFAULT_SETTINGS["timeout"], ge=1000, le=120000, description="Navigation and readiness timeout (milliseconds)")
    full_page: bool = Field(DEFAULT_SETTINGS["full_page"], alias="fullPage", description="Capture full page or just viewport")
    image_type: Literal["jpeg", "png", "webp"] = Field(DEFAULT_SETTINGS["image_type"], alias="imageType", description="Image format")
    quality: Optional[int] = Field(DEFAULT_SETTINGS["quality"], ge=0, le=100, description="Image quality (0-100, jpeg and webp only)")
    paper_format: str = Field(
        DEFAULT_SETTINGS["paper_format"],
        validation_alias=AliasChoices("format", "paperFormat"),
        description="PDF paper size, e.g. A4 or Letter",
    )
    landscape: bool = Field(DEFAULT_SETTINGS["landscape"])
    print_background: bool = Field(DEFAULT_SETTINGS["print_background"], alias="printBackground")
    margin: Optional[PdfMargin] = None
    scale: float = Field(DEFAULT_SETTINGS["scale"], ge=0.1, le=2.0)
    page_ranges: Optional[str] = Field(None, alias="pageRanges", description="PDF page ranges, e.g. '1-3, 5'")

    @field_validator('url')
    @classmethod
    def validate_url_scheme(cls, v):
        if v is None:
            return v
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https"):
            raise ValueError("Only http and https schemes are allowed")
        if not parsed.hostname:
            raise ValueError("URL must include a valid host")
        return v

    @field_validator('quality')
    @classmethod
    def validate_quality(cls, v, info: ValidationInfo):
        # PNG is lossless, ignore any provided quality
        if info.data.get('image_type') == 'png':
            return None
        return v

    @model_validator(mode='after')
    def validate_single_target(self):
        if (self.url is None) == (self.html is None):
            raise ValueError("Exactly one of 'url' or 'html' must be provided")
        return self

    @property
    def target(self) -> str:
        return self.url if self.url is not None else "<inline html>"


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    options: CaptureOptions
    format: CaptureFormat
    task_id: str = Field(default_factory=lambda: uuid.uuid4().hex)


class CaptureResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    payload: Union[bytes, str]
    content_type: str

    @property
    def size(self) -> int:
        return len(self.payload)
