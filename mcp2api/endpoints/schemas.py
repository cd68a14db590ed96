"""
请求体模型

必填字段统一声明为 Optional，缺失时由路由抛出带固定文案的 ValidationError，
而不是 FastAPI 默认的 422 明细。
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """POST /query"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    text: Optional[str] = Field(default=None, description="用户问题")
    session_id: str = Field(default="default", alias="sessionId", description="会话 ID")


class IngestRequest(BaseModel):
    """POST /admin/ingest"""
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = Field(default=None, description="文档原文")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="任意元数据")
    meta: Optional[Dict[str, Any]] = Field(default=None, description="metadata 的旧字段名")

    @property
    def resolved_metadata(self) -> Optional[Dict[str, Any]]:
        return self.metadata if self.metadata is not None else self.meta


class WebFetchRequest(BaseModel):
    url: Optional[str] = Field(default=None, description="要抓取的 URL")


class FileReadRequest(BaseModel):
    path: Optional[str] = Field(default=None, description="要读取的文件路径")
