"""
Params models: Pydantic v2 constraints for every built-in action.
Validation runs after interpolation, so every field here sees resolved values.
Aliased fields keep the recipe spelling (camelCase, `from`) while the Python
attribute stays snake_case; dumping with by_alias=True restores the recipe form.
"""
# @file purpose: Define parameter schemas for built-in actions using Pydantic v2.

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from grabber.core.action import ActionSpec

# Constraint helpers
NonEmptyStr = Annotated[str, Field(min_length=1)]
Selector = Annotated[str, Field(min_length=1, description="CSS selector")]
Key = Annotated[str, Field(min_length=1, description="Store key")]
Filename = Annotated[str, Field(min_length=1)]
Directory = Annotated[str, Field(min_length=1)]
Condition = Annotated[str, Field(min_length=1)]
Duration = Annotated[int, Field(ge=0, le=300_000)]
Body = list[ActionSpec]
ImageType = Literal["jpeg", "png"]


class Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EmptyParams(Params):
    """Actions that take no parameters."""


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class SetVariableParams(Params):
    key: Key
    value: Any = None


class GetVariableParams(Params):
    key: Key
    index: int | None = None


class DeleteVariableParams(Params):
    key: Key


class TransferVariableParams(Params):
    from_: Key = Field(..., alias="from")
    to: Key
    index: int | None = None
    key: str | None = None


class AppendToVariableParams(Params):
    key: Key
    value: Any = None


class CountStartParams(Params):
    key: Key
    value: int | float | None = None


class CountParams(Params):
    key: Key


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------


class IfParams(Params):
    condition: Condition
    actions: Body


class IfElseParams(Params):
    condition: Condition
    actions: Body
    else_actions: Body = Field(..., alias="elseActions")


class ForParams(Params):
    from_: int = Field(..., alias="from")
    until: int
    step: int = 1
    actions: Body

    @field_validator("step")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("step must not be 0")
        return v


class ForEachParams(Params):
    key: Key
    actions: Body


class WhileParams(Params):
    condition: Condition
    actions: Body


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class DirParams(Params):
    dir: Directory


class DirFromBaseParams(Params):
    dir: Directory
    use_base_dir: bool = Field(False, alias="useBaseDir")


class DeleteFolderParams(Params):
    foldername: Directory


class CreateFileParams(Params):
    filename: Filename
    content: str = ""


class ReadFromTextParams(Params):
    filename: Filename
    break_line: bool = Field(False, alias="breakLine")


class KeyToFileParams(Params):
    key: Key
    filename: Filename


class FilenameParams(Params):
    filename: Filename


class CheckStringInFileParams(Params):
    filename: Filename
    string: NonEmptyStr


class DownloadParams(Params):
    url: NonEmptyStr
    filename: Filename | None = None
    host: str | None = None
    show_progress: bool = Field(True, alias="showProgress")

    @model_validator(mode="after")
    def _absolute_or_host(self) -> "DownloadParams":
        if not self.url.startswith(("http://", "https://")) and not self.host:
            raise ValueError("relative url requires 'host'")
        return self


# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------


class PuppeteerParams(Params):
    """`func`/`func2` pick the page method; every other key is a positional argument."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    func: NonEmptyStr
    func2: str | None = None


class ScreenshotParams(Params):
    name: NonEmptyStr
    type: ImageType = "png"
    full_page: bool = Field(True, alias="fullPage")


class ScreenshotElementParams(Params):
    name: NonEmptyStr
    selector: Selector
    type: ImageType = "png"


class PageKeyParams(Params):
    page_key: NonEmptyStr = Field(..., alias="pageKey")


class GetElementsParams(Params):
    selector: Selector
    attribute: str | None = None


class GetChildrenParams(Params):
    selector_parent: Selector = Field(..., alias="selectorParent")
    selector_child: Selector = Field(..., alias="selectorChild")
    attribute: str | None = None


class SelectorParams(Params):
    selector: Selector


# ---------------------------------------------------------------------------
# Interaction
# ---------------------------------------------------------------------------


class ClickParams(Params):
    selector: Selector
    attribute: str | None = None
    text: str | None = None

    @model_validator(mode="after")
    def _attribute_needs_text(self) -> "ClickParams":
        if self.attribute and self.text is None:
            raise ValueError("'attribute' requires 'text'")
        return self


class ScrollWaitClickParams(Params):
    selector: Selector
    ms: Duration = 2000


class TypeParams(Params):
    selector: Selector
    text: str
    secret: bool = False


class LoginParams(Params):
    url: HttpUrl
    username_selector: Selector = Field(..., alias="usernameSelector")
    username: NonEmptyStr
    password_selector: Selector = Field(..., alias="passwordSelector")
    password: NonEmptyStr
    submit_selector: Selector = Field(..., alias="submitSelector")
    cookie_name: str | None = Field(None, alias="cookieName")


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


class SleepParams(Params):
    ms: Duration


class LogParams(Params):
    message: str
    color: str | None = None
    background: str | None = None


class StringParams(Params):
    string: str


class ReplaceStringParams(Params):
    string: str
    search: str
    replace: str


class MatchFromStringParams(Params):
    string: str
    regex: str


class MatchFromSelectorParams(Params):
    selector: Selector
    regex: str
    attribute: str | None = None


class RandomParams(Params):
    min: int
    max: int

    @model_validator(mode="after")
    def _ordered(self) -> "RandomParams":
        if self.min > self.max:
            raise ValueError("'min' must not exceed 'max'")
        return self


class GetExtensionParams(Params):
    string: NonEmptyStr


class UserInputParams(Params):
    query: str
