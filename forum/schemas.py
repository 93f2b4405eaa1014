from typing import Literal, get_args

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, ValidationError, model_validator

Category = Literal["music", "funny", "videos", "programming", "news", "fashion"]
CATEGORIES: tuple[str, ...] = get_args(Category)

_http_url = TypeAdapter(HttpUrl)


# --- Auth ---

class AuthForm(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    # bcrypt only looks at the first 72 bytes
    password: str = Field(min_length=1, max_length=72)


class TokenResponse(BaseModel):
    token: str


class MessageResponse(BaseModel):
    message: str = "success"


# --- Post ---

class PostCreate(BaseModel):
    category: Category
    title: str = Field(min_length=1, max_length=300)
    type: Literal["text", "link"]
    url: str | None = Field(None, max_length=2048)
    text: str | None = None

    @model_validator(mode="after")
    def _check_body(self) -> "PostCreate":
        if self.type == "link":
            if not self.url:
                raise ValueError("link posts require a url")
            try:
                _http_url.validate_python(self.url)
            except ValidationError as exc:
                raise ValueError(f"invalid url: {self.url!r}") from exc
        elif not self.text:
            raise ValueError("text posts require a text")
        return self


# --- Comment ---

class CommentCreate(BaseModel):
    comment: str = Field(min_length=1)
