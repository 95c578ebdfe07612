"""
开发辅助接口（终端、Notebook）的请求/响应模型
"""

from pydantic import AliasChoices, BaseModel, Field


class TerminalRequest(BaseModel):
    command: str = Field(..., min_length=1, max_length=10000)


class NotebookFile(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    content: str


class NotebookRequest(BaseModel):
    code: str = Field(..., min_length=1)
    files: list[NotebookFile] | None = None
    python_path: str | None = Field(
        default=None, validation_alias=AliasChoices("python_path", "pythonPath")
    )


class NotebookArtifact(BaseModel):
    name: str
    content: str
    mime: str


class NotebookResponse(BaseModel):
    stdout: str
    stderr: str
    images: list[str] = Field(default_factory=list)
    artifacts: list[NotebookArtifact] = Field(default_factory=list)
    error: str | None = None
    truncated: bool = False


class PythonPathRequest(BaseModel):
    path: str = Field(..., min_length=1)
