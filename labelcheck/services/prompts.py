"""
Prompts sent to the language model
"""
import json
from typing import Dict, Optional

from labelcheck.models.domain import QualityAssessment

RESPONSE_TEMPLATE = {
    "isValid": True,
    "confidence": 0.85,
    "correctedText": "Exact verbatim transcription with OCR errors fixed...",
    "extractedInformation": {
        "productName": "Product name if clearly visible",
        "brandName": "Brand if visible",
        "ingredients": ["ingredient1", "ingredient2"],
        "activeIngredients": ["active ingredient if any"],
        "warnings": ["Warning text if present"],
        "directions": "Usage directions if present",
        "netWeight": "Net weight/volume if present",
        "nutritionalInfo": {
            "servingSize": "2/3 cup (55g)",
            "servingsPerContainer": "8",
            "calories": "230",
            "totalFat": "8g",
            "totalFatDV": "10%",
            "saturatedFat": "1g",
            "transFat": "0g",
            "cholesterol": "0mg",
            "sodium": "160mg",
            "sodiumDV": "7%",
            "totalCarbohydrate": "37g",
            "dietaryFiber": "4g",
            "totalSugars": "12g",
            "addedSugars": "10g",
            "protein": "3g",
            "vitaminD": "2mcg",
            "calcium": "260mg",
            "iron": "8mg",
            "potassium": "235mg"
        },
        "allergens": ["Contains milk", "May contain nuts"],
        "claims": ["Good source of fiber", "Low sodium"]
    },
    "ocrIssuesFound": ["Specific OCR errors identified, e.g., 'Og' should be '0g'"],
    "completenessScore": 7,
    "complianceIssues": ["Missing required allergen statement"],
    "recommendations": ["Fix OCR error in serving size weight"],
    "qualityImprovement": "Moderate"
}

EXTRACTION_TEMPLATE = RESPONSE_TEMPLATE["extractedInformation"]


def _context_block(quality: Optional[QualityAssessment], sections: Optional[Dict[str, str]]) -> str:
    lines = []
    if quality is not None:
        lines.append(
            f"OCR quality: {quality.tier.value} (confidence {quality.confidence:.0%})"
        )
        if quality.issues:
            lines.append("Known OCR quality issues: " + "; ".join(quality.issues))
    if sections:
        lines.append("Sections detected by keyword matching (lower-cased, may be incomplete):")
        for name, content in sections.items():
            lines.append(f"- {name}: {content}")
    return "\n".join(lines)


def build_validation_prompt(
    ocr_text: str,
    quality: Optional[QualityAssessment] = None,
    sections: Optional[Dict[str, str]] = None,
) -> str:
    """Prompt for verbatim correction plus structured extraction"""
    context = _context_block(quality, sections)
    context_section = f"\nContext:\n{context}\n" if context else ""

    return f"""Please transcribe and validate this OCR-extracted text from a product label.

OCR-Extracted Text:
{ocr_text}
{context_section}
TASK: Please provide verbatim transcription and comprehensive analysis:

1. TRANSCRIBE the text exactly as it appears - line-by-line, preserving:
   - Line breaks and spacing
   - Capitalization and punctuation
   - Symbols (⚠, ®, ™, etc.)
   - All text including codes, numbers, barcodes
   - Do NOT paraphrase, interpret or summarize - only fix obvious OCR errors

2. IDENTIFY obvious OCR errors (garbled characters, impossible words)

3. EXTRACT regulatory information:
   - Nutritional facts with % Daily Values
   - Ingredient list (one entry per ingredient, in label order) and allergens
   - Warnings and directions
   - Claims and certifications

4. ASSESS regulatory compliance and provide specific recommendations

Respond ONLY in valid JSON format:
```json
{json.dumps(RESPONSE_TEMPLATE, indent=2, ensure_ascii=False)}
```

IMPORTANT: Return ONLY valid JSON - no explanation text before or after."""


def build_correction_prompt(ocr_text: str) -> str:
    """Prompt for plain OCR error correction"""
    return f"""Please correct the following OCR-extracted text by fixing obvious OCR errors only. Keep the same line structure, do not paraphrase or summarize, and don't add information that wasn't there.

Original OCR text:
{ocr_text}

Please provide only the corrected text without any explanation:"""


def build_extraction_prompt(label_text: str) -> str:
    """Prompt for structured extraction from already corrected text"""
    return f"""Extract structured information from this product label text. Include all nutritional data with % Daily Values, ingredients, allergens, warnings and claims exactly as shown.

Label text:
{label_text}

Return JSON in this format:
```json
{json.dumps(EXTRACTION_TEMPLATE, indent=2, ensure_ascii=False)}
```

IMPORTANT: Return ONLY valid JSON - no explanation text before or after."""
