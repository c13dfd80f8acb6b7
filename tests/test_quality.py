"""
Tests de l'analyseur de qualité
"""
import cv2
import numpy as np
import pytest

from app.exceptions import InvalidInput
from app.services.image_service import decode_base64_image, encode_image_base64
from app.services.quality_service import QualityAnalyzer, QualityPolicy
from tests.factories import make_face_image, make_flat_image


@pytest.fixture
def analyzer():
    return QualityAnalyzer(QualityPolicy())


class TestQualityAnalyzer:

    def test_good_capture_scores_high(self, analyzer):
        report = analyzer.analyze(make_face_image())

        assert report.subject_detected
        assert report.subject_centered
        assert 100 <= report.brightness <= 180
        assert report.sharpness >= 100
        assert report.score == 100
        assert report.issues == []
        assert analyzer.passes(report, analyzer.policy.enrollment_floor)

    def test_flat_image_has_no_subject(self, analyzer):
        report = analyzer.analyze(make_flat_image())

        assert not report.subject_detected
        assert report.sharpness == 0
        # Seule la luminosité contribue au score
        assert report.score == 30
        assert "Aucun visage détecté dans l'image" in report.issues
        assert "Image floue - tenez la caméra immobile" in report.issues

    def test_dark_image_reports_issue(self, analyzer):
        report = analyzer.analyze(make_flat_image(value=30))

        assert report.brightness == 30
        assert any("trop sombre" in issue for issue in report.issues)

    def test_bright_image_reports_issue(self, analyzer):
        report = analyzer.analyze(make_flat_image(value=240))

        assert any("trop lumineuse" in issue for issue in report.issues)

    def test_low_resolution_fails_even_with_good_score(self, analyzer):
        report = analyzer.analyze(make_face_image(width=320, height=240))

        assert report.subject_detected
        assert report.resolution == (320, 240)
        assert any("Résolution trop faible" in issue for issue in report.issues)
        assert not analyzer.passes(report, analyzer.policy.capture_floor)

    def test_off_center_subject(self, analyzer):
        image = make_face_image(centers=((0.12, 0.5),), axes=(0.1, 0.3))
        report = analyzer.analyze(image)

        assert not report.subject_centered

    @pytest.mark.parametrize(
        "brightness,expected",
        [(50, 0.5), (100, 1.0), (150, 1.0), (180, 1.0), (230, 0.5), (300, 0.0)],
    )
    def test_brightness_falloff(self, analyzer, brightness, expected):
        assert analyzer.normalize_brightness(brightness) == pytest.approx(expected)

    def test_thresholds_are_tunable(self):
        strict = QualityAnalyzer(QualityPolicy(min_width=1280, min_height=720))
        report = strict.analyze(make_face_image())

        assert any("1280x720" in issue for issue in report.issues)

    def test_dark_capture_fails_gate_despite_score(self, analyzer):
        report = analyzer.analyze(make_face_image(background=30, tone=(110, 60, 40), noise=40))

        assert report.subject_detected
        assert report.brightness < 60
        assert report.score >= analyzer.policy.enrollment_floor
        assert report.issues == ["Image trop sombre - améliorez l'éclairage"]
        assert not analyzer.passes(report, analyzer.policy.enrollment_floor)

    def test_blurry_capture_fails_gate_despite_score(self, analyzer):
        report = analyzer.analyze(cv2.GaussianBlur(make_face_image(noise=0), (31, 31), 0))

        assert report.subject_detected
        assert report.sharpness < 30
        assert report.score >= analyzer.policy.capture_floor
        assert "Image floue - tenez la caméra immobile" in report.issues
        assert not analyzer.passes(report, analyzer.policy.capture_floor)

    def test_zero_sharpness_reference_does_not_divide(self):
        analyzer = QualityAnalyzer(QualityPolicy(sharpness_reference=0))
        report = analyzer.analyze(make_flat_image())

        # Netteté comptée à plein, aucun sujet
        assert report.score == 70

    def test_zero_optimal_brightness_does_not_divide(self):
        analyzer = QualityAnalyzer(QualityPolicy(brightness_optimal_min=0, brightness_falloff=0))

        assert analyzer.normalize_brightness(0) == 1.0
        assert analyzer.normalize_brightness(-5) == 0.0
        assert analyzer.normalize_brightness(200) == 0.0

    def test_validate_uses_requested_floor(self, analyzer):
        report = analyzer.analyze(make_flat_image())

        assert "Qualité globale insuffisante - veuillez reprendre la photo" in analyzer.validate(report, 50)
        assert "Qualité globale insuffisante - veuillez reprendre la photo" not in analyzer.validate(report, 10)


class TestMalformedInput:

    @pytest.mark.parametrize(
        "image",
        [
            np.zeros((0, 0, 3), dtype=np.uint8),
            np.zeros((10, 10, 3), dtype=np.float32),
            np.zeros((10, 10, 2), dtype=np.uint8),
            "pas une image",
        ],
    )
    def test_malformed_image_is_invalid_input(self, analyzer, image):
        with pytest.raises(InvalidInput):
            analyzer.analyze(image)

    def test_grayscale_is_accepted(self, analyzer):
        report = analyzer.analyze(np.full((480, 640), 120, dtype=np.uint8))
        assert report.brightness == 120

    def test_base64_round_trip_with_data_prefix(self):
        image = make_face_image(width=64, height=48)
        encoded = "data:image/png;base64," + encode_image_base64(image)

        assert np.array_equal(decode_base64_image(encoded), image)

    @pytest.mark.parametrize("payload", ["", "bm90IGFuIGltYWdl"])
    def test_undecodable_base64(self, payload):
        with pytest.raises(InvalidInput):
            decode_base64_image(payload)
