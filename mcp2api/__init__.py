"""
MCP2API

MCP 事件流 + RAG 查询 + Anthropic Messages -> OpenAI Chat Completions 协议桥
"""

__version__ = "1.0.0"
