"""
Resume text extraction and rule-based cleanup.

Supported formats:
- PDF: Parsed with pdfplumber
- DOCX: Parsed with docx2txt
- DOC: Legacy format, rejected (convert to DOCX or PDF)

Cleanup is regex-only (no LLM): it removes watermark and ID fragments that
PDF export leaves behind and collapses lines repeated on every page.
"""

import logging
import re
from collections import Counter
from io import BytesIO
import docx2txt
import pdfplumber

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_CONTENT_TYPE = "application/msword"

SUPPORTED_CONTENT_TYPES = {PDF_CONTENT_TYPE, DOCX_CONTENT_TYPE}

_SECTION_HEADINGS = re.compile(
    r"^(EDUCATION|EXPERIENCE|SKILLS|PROJECTS|AWARDS|CERTIFICATES|CERTIFICATIONS|SUMMARY|OBJECTIVE|"
    r"PROFILE|WORK EXPERIENCE|PROFESSIONAL EXPERIENCE|LANGUAGES|INTERESTS|"
    r"个人信息|基本信息|教育背景|教育经历|工作经历|工作经验|项目经历|项目经验|技能特长|专业技能|自我评价|求职意向)$",
    re.IGNORECASE,
)

_WATERMARK_PATTERNS = [
    # "ID: 12345 2023-06-16" fragments from job-board exports
    re.compile(r"ID\s*[:：]\s*\d+(?:\s+\d{4}[-/]\d{2}[-/]\d{2})?", re.IGNORECASE),
    re.compile(r"^\s*ID\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*\d{3,8}\s+\d{4}[-/]\d{2}[-/]\d{2}\s*$", re.MULTILINE),
    re.compile(r"^\s*\d{1,2}\s+\d{1,2}\s*$", re.MULTILINE),
    re.compile(r"(?:Resume|简历编号)\s*(?:No\.?|#)?\s*[:：]\s*\S+", re.IGNORECASE),
    # Page counters such as "2 / 5" or "Page 3"
    re.compile(r"^\s*\d+\s*/\s*\d+\s*$", re.MULTILINE),
    re.compile(r"^\s*Page\s+\d+(?:\s+of\s+\d+)?\s*$", re.IGNORECASE | re.MULTILINE),
]

_JOB_BOARD_WATERMARKS = ["51job", "zhaopin", "lagou", "liepin", "BOSS直聘", "前程无忧", "智联招聘", "拉勾网", "猎聘"]

_MEANINGFUL_SHORT_WORDS = {"MBA", "PhD", "BSc", "MSc", "男", "女", "本科", "硕士", "博士", "专科", "至今"}

_HAS_LETTER = re.compile(r"[A-Za-z一-龥]")


class UnsupportedDocumentError(ValueError):
    """Raised for formats we cannot extract text from"""
    pass


def extract_text(data: bytes, content_type: str) -> str:
    """
    Extract plain text from a resume document.

    Args:
        data: File contents
        content_type: MIME type recorded at upload

    Returns:
        Markdown-ish text with section headings marked

    Raises:
        UnsupportedDocumentError: Legacy .doc or unknown type
        ValueError: No text could be extracted (e.g. a scanned image)
    """
    if content_type == DOC_CONTENT_TYPE:
        raise UnsupportedDocumentError(
            "Legacy .doc format is not supported. "
            "Please convert the resume to .docx or .pdf format and upload again."
        )

    if content_type == DOCX_CONTENT_TYPE:
        text = docx2txt.process(BytesIO(data)) or ""
    elif content_type == PDF_CONTENT_TYPE:
        pages = []
        with pdfplumber.open(BytesIO(data)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    pages.append(page_text)
        text = "\n".join(pages)
    else:
        raise UnsupportedDocumentError(f"Unsupported file type: {content_type}. Only PDF and DOCX are supported.")

    if not text.strip():
        raise ValueError("No text could be extracted from this file. It may be corrupted or a scanned image.")

    logger.debug(f"Extracted {len(text)} chars from {content_type}")
    return convert_raw_text_to_markdown(text)


def convert_raw_text_to_markdown(text: str) -> str:
    """Mark known section headings with '## ' and squeeze blank runs"""
    lines = []
    for raw in text.split("\n"):
        line = raw.strip()
        if line and len(line) <= 30 and _SECTION_HEADINGS.match(line):
            lines.append(f"## {line}")
        else:
            lines.append(line)
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def _is_noise_line(stripped: str) -> bool:
    if len(stripped) <= 3 and not _HAS_LETTER.search(stripped):
        return True
    if len(stripped) <= 2 and stripped not in _MEANINGFUL_SHORT_WORDS and not stripped.isascii():
        return True
    # A lone year on its own line is almost always a watermark fragment
    return bool(re.fullmatch(r"\d{4}", stripped))


def clean_resume_text(text: str) -> str:
    """
    Remove watermark noise and page-repeated lines from extracted text.
    """
    cleaned = text
    for pattern in _WATERMARK_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    for keyword in _JOB_BOARD_WATERMARKS:
        cleaned = re.sub(re.escape(keyword), "", cleaned, flags=re.IGNORECASE)

    kept = []
    for line in cleaned.split("\n"):
        stripped = line.strip()
        if not stripped:
            kept.append("")
        elif not _is_noise_line(stripped):
            kept.append(line)

    # Lines that appear more than twice are headers/footers; keep the first
    counts = Counter(line.strip() for line in kept if len(line.strip()) >= 4)
    seen = set()
    deduped = []
    for line in kept:
        stripped = line.strip()
        if counts.get(stripped, 0) > 2:
            if stripped in seen:
                continue
            seen.add(stripped)
        deduped.append(line)

    cleaned = "\n".join(deduped)
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()
