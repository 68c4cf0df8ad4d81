import asyncio
import base64
import shlex

import numpy as np

from fakes import FakeEngine, png_bytes
from labelcheck.infrastructure.ocr_engines.base_engine import EngineResult, EngineWord
from labelcheck.infrastructure.ocr_engines.tesseract_engine import TesseractOCREngine
from labelcheck.models.requests import LabelJob
from labelcheck.services.text_extraction import TextExtractionService

LABEL_TEXT = "INGREDIENTS: Water, Sugar, Salt\nDirections: Shake well"


def test_extract_from_base64(png_base64):
    engine = FakeEngine(LABEL_TEXT, confidence=90.0)
    service = TextExtractionService(engine)

    result = asyncio.run(service.extract(LabelJob(image_base64=png_base64, filename="syrup.png")))

    assert result.success
    assert result.filename == "syrup.png"
    assert result.text == LABEL_TEXT
    assert result.confidence == 0.9
    assert result.total_words == 7
    assert result.low_confidence_words == 0
    assert result.detected_sections["ingredients"] == "water, sugar, salt"
    assert result.detected_sections["directions"] == "shake well"


def test_extract_from_path(tmp_path):
    image_path = tmp_path / "label.png"
    image_path.write_bytes(png_bytes())
    service = TextExtractionService(FakeEngine(LABEL_TEXT))

    result = asyncio.run(service.extract(LabelJob(image_path=str(image_path))))

    assert result.success
    assert result.image_source == str(image_path)


def test_missing_file_is_a_failed_result(tmp_path):
    engine = FakeEngine(LABEL_TEXT)
    service = TextExtractionService(engine)

    result = asyncio.run(service.extract(LabelJob(image_path=str(tmp_path / "missing.png"))))

    assert not result.success
    assert result.error
    assert result.text == ""
    assert result.confidence == 0.0
    assert engine.calls == 0


def test_unsupported_format_is_a_failed_result(png_base64):
    service = TextExtractionService(FakeEngine(LABEL_TEXT), allowed_formats=["jpg"])

    result = asyncio.run(service.extract(LabelJob(image_base64=png_base64)))

    assert not result.success
    assert "Unsupported image format: png" in result.error


def test_garbage_bytes_are_a_failed_result():
    service = TextExtractionService(FakeEngine(LABEL_TEXT))
    job = LabelJob(image_base64=base64.b64encode(b"not an image").decode("ascii"))

    result = asyncio.run(service.extract(job))

    assert not result.success


def test_engine_failure_is_a_failed_result(png_base64):
    service = TextExtractionService(FakeEngine(error="tesseract crashed"))

    result = asyncio.run(service.extract(LabelJob(image_base64=png_base64)))

    assert not result.success
    assert result.error == "tesseract crashed"


def test_build_result_counts_low_confidence_words():
    engine_result = EngineResult(
        text="Sugar Salt Wter",
        mean_confidence=70.0,
        words=[
            EngineWord("Sugar", 90.0, (0, 0, 10, 10)),
            EngineWord("Salt", 85.0, (12, 0, 20, 10)),
            EngineWord("Wter", 35.0, (22, 0, 30, 10)),
        ],
        lines=["Sugar Salt Wter", "  "],
    )

    result = TextExtractionService.build_result(engine_result, low_confidence_threshold=60.0)

    assert result.confidence == 0.7
    assert result.low_confidence_words == 1
    assert result.low_confidence_word_ratio == 1 / 3
    assert result.lines == ["Sugar Salt Wter"]
    assert result.words[2].bbox.x1 == 30


def test_tesseract_data_is_grouped_into_lines():
    data = {
        "text": ["", "", "", "INGREDIENTS:", "Water,", "", "Sugar", "  "],
        "conf": ["-1", "-1", "-1", "91.5", "88", "-1", "72", "-1"],
        "left": [0, 0, 0, 10, 120, 0, 10, 0],
        "top": [0, 0, 0, 10, 10, 0, 40, 0],
        "width": [0, 0, 0, 100, 60, 0, 50, 0],
        "height": [0, 0, 0, 20, 20, 0, 20, 0],
        "page_num": [1, 1, 1, 1, 1, 1, 1, 1],
        "block_num": [0, 1, 1, 1, 1, 1, 1, 1],
        "par_num": [0, 0, 1, 1, 1, 1, 1, 1],
        "line_num": [0, 0, 0, 1, 1, 2, 2, 2],
    }

    result = TesseractOCREngine.parse_data(data)

    assert result.lines == ["INGREDIENTS: Water,", "Sugar"]
    assert result.text == "INGREDIENTS: Water,\nSugar"
    assert [w.text for w in result.words] == ["INGREDIENTS:", "Water,", "Sugar"]
    assert result.words[0].bbox == (10, 10, 110, 30)
    assert round(result.mean_confidence, 2) == round((91.5 + 88 + 72) / 3, 2)


def test_tesseract_engine_builds_config_and_calls_pytesseract(monkeypatch):
    captured = {}

    def fake_image_to_data(image, lang, config, output_type):
        captured.update(lang=lang, config=config, size=image.size)
        return {
            "text": ["Salt"], "conf": ["80"], "left": [0], "top": [0], "width": [5],
            "height": [5], "page_num": [1], "block_num": [1], "par_num": [1], "line_num": [1],
        }

    monkeypatch.setattr(
        "labelcheck.infrastructure.ocr_engines.tesseract_engine.pytesseract.image_to_data",
        fake_image_to_data,
    )
    engine = TesseractOCREngine(lang="eng", psm=6, oem=1, char_whitelist="abc")

    result = engine.extract_text(np.zeros((20, 30, 3), dtype=np.uint8))

    assert captured["lang"] == "eng"
    assert captured["config"] == "--psm 6 --oem 1 -c tessedit_char_whitelist=abc"
    assert captured["size"] == (30, 20)
    assert result.text == "Salt"


def test_whitelist_with_quotes_survives_shell_splitting():
    engine = TesseractOCREngine(char_whitelist="AB&'!*\"")

    args = shlex.split(engine.config_string())

    assert args[-2:] == ["-c", "tessedit_char_whitelist=AB&'!*\""]
