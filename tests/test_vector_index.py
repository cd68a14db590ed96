"""
测试相似度检索

验证余弦相似度和 top-k 选择
"""

import unittest

from mcp2api.models import Document
from mcp2api.vector_index import cosine, score, top_k


class TestCosine(unittest.TestCase):
    """测试 cosine"""

    def test_identical_vectors(self):
        self.assertAlmostEqual(cosine([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]), 1.0, places=6)

    def test_orthogonal_vectors(self):
        self.assertAlmostEqual(cosine([1.0, 0.0], [0.0, 1.0]), 0.0, places=6)

    def test_opposite_vectors(self):
        self.assertAlmostEqual(cosine([1.0, 2.0], [-1.0, -2.0]), -1.0, places=6)

    def test_zero_vector_does_not_divide_by_zero(self):
        self.assertEqual(cosine([0.0, 0.0], [1.0, 1.0]), 0.0)

    def test_dimension_mismatch(self):
        with self.assertRaises(ValueError):
            cosine([1.0, 0.0], [1.0, 0.0, 0.0])


class TestTopK(unittest.TestCase):
    """测试 top_k / score"""

    def setUp(self):
        self.docs = [
            Document(id="a", text="python", embedding=(1.0, 0.0)),
            Document(id="b", text="mixed", embedding=(0.7, 0.7)),
            Document(id="c", text="rust", embedding=(0.0, 1.0)),
            Document(id="d", text="no vector"),
        ]

    def test_orders_by_similarity(self):
        hits = top_k([1.0, 0.1], self.docs, k=3)
        self.assertEqual([h.document.id for h in hits], ["a", "b", "c"])
        self.assertGreater(hits[0].score, hits[1].score)

    def test_documents_without_embedding_are_skipped(self):
        hits = top_k([1.0, 0.0], self.docs, k=10)
        self.assertEqual(len(hits), 3)
        self.assertNotIn("d", [h.document.id for h in hits])

    def test_k_limits_results(self):
        self.assertEqual(len(top_k([1.0, 0.0], self.docs, k=1)), 1)
        self.assertEqual(top_k([1.0, 0.0], self.docs, k=0), [])

    def test_mismatched_dimension_is_skipped(self):
        docs = self.docs + [Document(id="wide", text="new model", embedding=(1.0, 0.0, 0.0))]
        hits = top_k([1.0, 0.0], docs, k=10)
        self.assertEqual([h.document.id for h in hits], ["a", "b", "c"])

        hits = top_k([1.0, 0.0, 0.0], docs, k=10)
        self.assertEqual([h.document.id for h in hits], ["wide"])

    def test_empty_store(self):
        self.assertEqual(top_k([1.0, 0.0], [], k=5), [])

    def test_score_pairs(self):
        ranked = score([0.0, 1.0], [("x", [1.0, 0.0]), ("y", [0.0, 2.0])])
        self.assertEqual(ranked[0][0], "y")
        self.assertAlmostEqual(ranked[0][1], 1.0, places=6)


if __name__ == "__main__":
    unittest.main()
