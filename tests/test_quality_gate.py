from labelcheck.core.enums import QualityTier, Severity
from labelcheck.models.domain import ExtractionResult
from labelcheck.services.quality_gate import assess_quality, quality_report

LONG_TEXT = (
    "INGREDIENTS: Whole grain oats, sugar, canola oil, rice flour, honey, salt\n"
    "Distributed by Example Foods, Springfield"
)


def extraction(text=LONG_TEXT, confidence=0.9, total_words=100, low_confidence_words=0):
    return ExtractionResult(
        text=text,
        confidence=confidence,
        mean_confidence=confidence * 100,
        total_words=total_words,
        low_confidence_words=low_confidence_words,
    )


def test_high_confidence_with_few_weak_words_is_excellent():
    assessment = assess_quality(extraction(confidence=0.9, low_confidence_words=5))

    assert assessment.tier == QualityTier.EXCELLENT
    assert assessment.issues == []


def test_high_confidence_with_many_weak_words_is_good():
    assessment = assess_quality(extraction(confidence=0.9, low_confidence_words=15))

    assert assessment.tier == QualityTier.GOOD
    assert "High number of low-confidence words" not in assessment.issues


def test_moderate_confidence_is_fair():
    assessment = assess_quality(extraction(confidence=0.75))

    assert assessment.tier == QualityTier.FAIR
    assert assessment.issues == ["Moderate confidence"]
    assert assessment.recommendations == ["Verify critical sections manually"]


def test_low_confidence_is_poor():
    assessment = assess_quality(extraction(confidence=0.5))

    assert assessment.tier == QualityTier.POOR
    assert "Low overall confidence" in assessment.issues
    assert "Consider image preprocessing or manual review" in assessment.recommendations


def test_many_weak_words_add_an_issue():
    assessment = assess_quality(extraction(confidence=0.9, low_confidence_words=30))

    assert assessment.tier == QualityTier.GOOD
    assert "High number of low-confidence words" in assessment.issues
    assert "Review text for accuracy" in assessment.recommendations


def test_empty_text_is_poor():
    assessment = assess_quality(extraction(text="", confidence=0.95, total_words=0))

    assert assessment.tier == QualityTier.POOR
    assert "No text detected" in assessment.issues


def test_short_text_is_forced_poor():
    assessment = assess_quality(extraction(text="INGREDIENTS: Water", confidence=0.95, total_words=2))

    assert assessment.tier == QualityTier.POOR
    assert "Very short text extracted" in assessment.issues
    assert "Check if image contains readable text" in assessment.recommendations


def test_artifacts_are_reported_without_changing_the_tier():
    noisy = LONG_TEXT + " |~ {} @@ ## $$ ^^ ** ++"

    assessment = assess_quality(extraction(text=noisy, confidence=0.9))

    assert assessment.tier == QualityTier.EXCELLENT
    assert "Contains OCR artifacts" in assessment.issues


def test_assessment_is_idempotent():
    result = extraction(confidence=0.72, low_confidence_words=25)

    assert assess_quality(result) == assess_quality(result)


def test_report_never_blocks():
    poor = assess_quality(extraction(text="", confidence=0.1, total_words=0))
    fair = assess_quality(extraction(confidence=0.75))

    poor_report = quality_report(poor)
    fair_report = quality_report(fair)

    assert {f.severity for f in poor_report.findings} == {Severity.WARNING}
    assert {f.severity for f in fair_report.findings} == {Severity.INFO}
    assert all(not f.is_blocking for f in poor_report.findings + poor_report.recommendations)
    assert all(f.type == "OCR_QUALITY_RECOMMENDATION" for f in poor_report.recommendations)
