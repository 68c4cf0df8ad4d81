"""
Regulatory section detection in raw OCR text
"""
import re
from typing import Dict

from labelcheck.core.enums import SectionName

# Each pattern captures lazily up to a newline, the end of text or the next
# section keyword. Keywords nested inside one another ("active ingredients"
# contains "ingredients") are not disambiguated: the plain pattern matches the
# first occurrence of its keyword wherever it appears.
SECTION_PATTERNS = {
    SectionName.INGREDIENTS: re.compile(
        r"ingredients?[:\s-]*(.*?)(?=\n|$|directions|warnings|caution)", re.S
    ),
    SectionName.DIRECTIONS: re.compile(
        r"directions?[:\s-]*(.*?)(?=\n|$|ingredients|warnings|caution)", re.S
    ),
    SectionName.WARNINGS: re.compile(
        r"warnings?[:\s-]*(.*?)(?=\n|$|ingredients|directions)", re.S
    ),
    SectionName.CAUTION: re.compile(
        r"caution[:\s-]*(.*?)(?=\n|$|ingredients|directions|warnings)", re.S
    ),
    SectionName.DOSAGE: re.compile(
        r"dosage[:\s-]*(.*?)(?=\n|$|ingredients|directions|warnings)", re.S
    ),
    SectionName.ACTIVE_INGREDIENTS: re.compile(
        r"active ingredients?[:\s-]*(.*?)(?=\n|$|inactive|directions)", re.S
    ),
    SectionName.INACTIVE_INGREDIENTS: re.compile(
        r"inactive ingredients?[:\s-]*(.*?)(?=\n|$|active|directions)", re.S
    ),
}


def detect_sections(text: str) -> Dict[str, str]:
    """
    Find common regulatory sections in label text

    Args:
        text: Raw recognized text

    Returns:
        Mapping of section name to its lower-cased content; sections that are
        absent or empty are left out
    """
    sections: Dict[str, str] = {}
    if not text:
        return sections

    lower_text = text.lower()
    for name, pattern in SECTION_PATTERNS.items():
        match = pattern.search(lower_text)
        if match and match.group(1).strip():
            sections[name.value] = match.group(1).strip()
    return sections
