"""
Tests de la comparaison de vecteurs
"""
import numpy as np
import pytest

from app.exceptions import DegenerateEmbedding, InvalidInput, VersionMismatch
from app.services.matcher_service import SimilarityMatcher
from tests.factories import unit_vector, vector_with_cosine


@pytest.fixture
def matcher():
    return SimilarityMatcher(dimension=128)


def random_unit_vectors(count, dimension=128, seed=3):
    rng = np.random.default_rng(seed)
    vectors = rng.normal(size=(count, dimension))
    return vectors / np.linalg.norm(vectors, axis=1, keepdims=True)


class TestSimilarityMatcher:

    def test_self_match_is_exactly_one(self, matcher):
        for vector in random_unit_vectors(5):
            assert matcher.similarity(vector, vector) == 1.0

    def test_self_match_beats_unrelated(self, matcher):
        vectors = random_unit_vectors(20)
        candidate = vectors[0]
        self_score = matcher.similarity(candidate, candidate)

        assert all(self_score >= matcher.similarity(candidate, other) for other in vectors[1:])

    @pytest.mark.parametrize("cosine,confidence", [(0.92, 92.0), (0.40, 40.0), (-0.5, 0.0)])
    def test_confidence_from_cosine(self, matcher, cosine, confidence):
        result = matcher.compare(unit_vector(128), vector_with_cosine(128, cosine))
        assert result.confidence == pytest.approx(confidence)

    def test_zero_norm_is_degenerate(self, matcher):
        with pytest.raises(DegenerateEmbedding):
            matcher.similarity(np.zeros(128), unit_vector(128))

    def test_length_mismatch_is_programming_error(self):
        with pytest.raises(InvalidInput):
            SimilarityMatcher().similarity(unit_vector(128), unit_vector(64))

    def test_configured_dimension_is_enforced(self, matcher):
        with pytest.raises(InvalidInput):
            matcher.similarity(unit_vector(64), unit_vector(64))

    def test_unnormalized_embedding_is_rejected(self, matcher):
        with pytest.raises(InvalidInput):
            matcher.similarity(unit_vector(128) * 3, unit_vector(128))

    def test_version_mismatch(self, matcher):
        with pytest.raises(VersionMismatch):
            matcher.compare(
                unit_vector(128), unit_vector(128),
                candidate_version="dlib-resnet-v1", reference_version="grid-pool-v1"
            )
