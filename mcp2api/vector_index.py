"""
相似度检索

线性扫描 + 余弦相似度。文档量在几十到几千条时足够快，不需要额外的索引结构。
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from log import log

from .models import Document

__all__ = ["EPSILON", "ScoredDocument", "cosine", "score", "top_k"]

# 全零向量时避免除零
EPSILON = 1e-8


@dataclass(frozen=True)
class ScoredDocument:
    document: Document
    score: float


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b| + EPSILON)"""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"vector dimensions differ: {va.shape[0]} vs {vb.shape[0]}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb)) + EPSILON
    return float(np.dot(va, vb)) / denom


def score(
    query: Sequence[float], candidates: Iterable[Tuple[str, Sequence[float]]]
) -> List[Tuple[str, float]]:
    """对 (id, vector) 候选打分，按相似度降序返回 (id, similarity)"""
    scored = [(doc_id, cosine(query, vector)) for doc_id, vector in candidates]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored


def top_k(query: Sequence[float], documents: Iterable[Document], k: int = 5) -> List[ScoredDocument]:
    """
    返回相似度最高的 k 个文档

    没有 embedding 的文档直接跳过；维度与 query 不一致的文档（例如更换 EMBEDDING_MODEL
    之前写入的旧向量）同样跳过并记录警告。结果数量不超过 min(k, 可比较的文档数)。
    """
    if k <= 0:
        return []

    scored = []
    mismatched = []
    for doc in documents:
        if not doc.embedding:
            continue
        if len(doc.embedding) != len(query):
            mismatched.append(doc.id)
            continue
        scored.append(ScoredDocument(document=doc, score=cosine(query, doc.embedding)))

    if mismatched:
        log.warning(
            f"Skipped {len(mismatched)} documents with embedding dimension != {len(query)}: "
            f"{', '.join(mismatched[:5])}",
            tag="RAG",
        )
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[:k]
