from __future__ import annotations

import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


def _validate_http_url(value: str) -> str:
    url = (value or "").strip()
    if not url.lower().startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return url


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["rss", "shared_items"] = "rss"
    feed_url: str = "https://alvinashcraft.newsblur.com/social/rss/109116/alvinashcraft"
    record_count: PositiveInt = 100
    label: str = ""

    @field_validator("feed_url")
    @classmethod
    def _feed_url_must_be_http(cls, v: str) -> str:
        return _validate_http_url(v)


class SharedItemsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_base: str = "https://newsblur.com"
    user_id: PositiveInt = 109116
    user_slug: str = "alvinashcraft"
    username: str = ""
    password_env: str = "FEED_API_PASSWORD"
    label: str = "Shared stories"

    @field_validator("api_base")
    @classmethod
    def _api_base_must_be_http(cls, v: str) -> str:
        return _validate_http_url(v).rstrip("/")

    @field_validator("password_env")
    @classmethod
    def _password_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class HttpConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout_seconds: float = Field(30.0, gt=0)
    retry_delay_seconds: float = Field(1.0, ge=0)
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )


class BaselineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    minimum_datetime: str = ""
    buffer_enabled: bool = False
    buffer_minutes: NonNegativeInt = 0
    reference_feed_url: str = "https://www.alvinashcraft.com/feed/"
    title_marker: str = "dew d"

    @field_validator("reference_feed_url")
    @classmethod
    def _reference_url_must_be_http(cls, v: str) -> str:
        return _validate_http_url(v)

    @field_validator("title_marker")
    @classmethod
    def _marker_must_be_non_empty(cls, v: str) -> str:
        marker = (v or "").strip().lower()
        if not marker:
            raise ValueError("must be a non-empty title prefix")
        return marker


class LinksConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    campaign_domain: str = "syncfusion.com"
    campaign_param: str = "utm_campaign"

    @field_validator("campaign_domain")
    @classmethod
    def _normalize_domain(cls, v: str) -> str:
        return (v or "").strip().lower().lstrip(".")


class RulesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Empty paths use the JSON files shipped in feed_categorizer/data.
    categories_path: str = ""
    author_mappings_path: str = ""


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    source: SourceConfig = Field(default_factory=SourceConfig)
    shared_items: SharedItemsConfig = Field(default_factory=SharedItemsConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    baseline: BaselineConfig = Field(default_factory=BaselineConfig)
    links: LinksConfig = Field(default_factory=LinksConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)

    @model_validator(mode="after")
    def _shared_items_needs_username(self) -> "AppSettings":
        if self.source.mode == "shared_items" and not self.shared_items.username.strip():
            raise ValueError("shared_items.username is required when source.mode is 'shared_items'")
        return self


# ---- rule documents (JSON) ----


class CategoryDefinitionModel(BaseModel):
    # authorKeywords and other future keys are tolerated but unused.
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    url_keywords: list[StrictStr] = Field(default_factory=list, alias="urlKeywords")
    title_keywords: list[StrictStr] = Field(default_factory=list, alias="titleKeywords")


class CategoriesDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    categories: dict[str, Union[list[StrictStr], CategoryDefinitionModel]] = Field(default_factory=dict)
    default_category: str = Field("General", alias="defaultCategory")
    whole_word_keywords: list[StrictStr] = Field(default_factory=list, alias="wholeWordKeywords")

    def normalized_categories(self) -> dict[str, CategoryDefinitionModel]:
        """Legacy bare keyword lists become title keywords."""
        out: dict[str, CategoryDefinitionModel] = {}
        for name, definition in self.categories.items():
            if isinstance(definition, list):
                out[name] = CategoryDefinitionModel(title_keywords=list(definition))
            else:
                out[name] = definition
        return out


class AuthorRuleModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    keyword: StrictStr
    author: StrictStr


class AuthorMappingsDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    url_contains: list[AuthorRuleModel] = Field(default_factory=list, alias="urlContains")
    author_contains: list[AuthorRuleModel] = Field(default_factory=list, alias="authorContains")
    author_exact: list[AuthorRuleModel] = Field(default_factory=list, alias="authorExact")
