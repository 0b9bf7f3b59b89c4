from pydantic import BaseModel, ConfigDict, Field


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    bio: str | None = None
    image: str | None = None


class UserCreateRequest(BaseModel):
    user: UserCreate


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CommentCreateRequest(BaseModel):
    comment: CommentCreate


# --- Article ---

class ArticleCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=300)
    description: str = Field("", max_length=2048)
    body: str = ""
    # Tag names; repeats are passed through to the tag normalizer as-is.
    tag_list: list[str] = Field(default_factory=list, alias="tagList")


class ArticleCreateRequest(BaseModel):
    article: ArticleCreate


class ArticleUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=2048)
    body: str | None = None
    tag_list: list[str] | None = Field(None, alias="tagList")


class ArticleUpdateRequest(BaseModel):
    article: ArticleUpdate


# --- Responses ---

class ProfileResponse(BaseModel):
    username: str
    bio: str | None = None
    image: str | None = None
    following: bool = False


class SingleProfileResponse(BaseModel):
    profile: ProfileResponse


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    bio: str | None = None
    image: str | None = None


class SingleUserResponse(BaseModel):
    user: UserResponse


class ArticleResponse(BaseModel):
    slug: str
    title: str
    description: str
    body: str
    tagList: list[str] = []
    createdAt: str
    updatedAt: str
    favorited: bool = False
    favoritesCount: int = 0
    author: ProfileResponse


class SingleArticleResponse(BaseModel):
    article: ArticleResponse


class MultipleArticlesResponse(BaseModel):
    articles: list[ArticleResponse]
    articlesCount: int


class CommentResponse(BaseModel):
    id: int
    body: str
    createdAt: str
    updatedAt: str
    author: ProfileResponse


class SingleCommentResponse(BaseModel):
    comment: CommentResponse


class MultipleCommentsResponse(BaseModel):
    comments: list[CommentResponse]


class TagsResponse(BaseModel):
    tags: list[str]
