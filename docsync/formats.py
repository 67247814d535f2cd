from enum import Enum


class Extraction(str, Enum):
    DOCUMENT = "document"
    SLIDES = "slides"
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"
    TEXT = "text"
    NONE = "none"


class FormatTag(str, Enum):
    GOOGLE_SLIDES = "application/vnd.google-apps.presentation"
    GOOGLE_DOC = "application/vnd.google-apps.document"
    GOOGLE_SHEET = "application/vnd.google-apps.spreadsheet"
    PDF = "application/pdf"
    PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    MARKDOWN = "text/markdown"
    TEXT = "text/plain"
    UNKNOWN = "application/octet-stream"

    @property
    def extraction(self) -> Extraction:
        return _EXTRACTION[self]

    @property
    def priority(self) -> int:
        """Rank used to pick a duplicate-group winner; lower wins."""
        try:
            return FORMAT_PRIORITY.index(self)
        except ValueError:
            return len(FORMAT_PRIORITY)

    @classmethod
    def from_mime(cls, mime_type: str) -> "FormatTag":
        try:
            return cls(mime_type)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def from_extension(cls, suffix: str) -> "FormatTag":
        return EXTENSION_TO_FORMAT.get(suffix.lower(), cls.UNKNOWN)


# Native formats are exported by the content source to their OOXML equivalent.
_EXTRACTION: dict[FormatTag, Extraction] = {
    FormatTag.GOOGLE_SLIDES: Extraction.SLIDES,
    FormatTag.GOOGLE_DOC: Extraction.DOCUMENT,
    FormatTag.GOOGLE_SHEET: Extraction.SPREADSHEET,
    FormatTag.PDF: Extraction.PDF,
    FormatTag.PPTX: Extraction.SLIDES,
    FormatTag.DOCX: Extraction.DOCUMENT,
    FormatTag.XLSX: Extraction.SPREADSHEET,
    FormatTag.MARKDOWN: Extraction.TEXT,
    FormatTag.TEXT: Extraction.TEXT,
    FormatTag.UNKNOWN: Extraction.NONE,
}

_missing = set(FormatTag) - set(_EXTRACTION)
if _missing:
    raise RuntimeError(f"No extraction strategy for: {', '.join(sorted(m.name for m in _missing))}")
del _missing

# Richest native format first, flattest export last.
FORMAT_PRIORITY: list[FormatTag] = [
    FormatTag.GOOGLE_SLIDES,
    FormatTag.GOOGLE_DOC,
    FormatTag.GOOGLE_SHEET,
    FormatTag.PDF,
    FormatTag.PPTX,
    FormatTag.DOCX,
    FormatTag.XLSX,
    FormatTag.MARKDOWN,
    FormatTag.TEXT,
]

SUPPORTED_FORMATS: frozenset[FormatTag] = frozenset(
    {
        FormatTag.GOOGLE_SLIDES,
        FormatTag.GOOGLE_DOC,
        FormatTag.GOOGLE_SHEET,
        FormatTag.PDF,
        FormatTag.PPTX,
        FormatTag.DOCX,
        FormatTag.XLSX,
    }
)

EXTENSION_TO_FORMAT: dict[str, FormatTag] = {
    ".gslides": FormatTag.GOOGLE_SLIDES,
    ".gdoc": FormatTag.GOOGLE_DOC,
    ".gsheet": FormatTag.GOOGLE_SHEET,
    ".pdf": FormatTag.PDF,
    ".pptx": FormatTag.PPTX,
    ".docx": FormatTag.DOCX,
    ".xlsx": FormatTag.XLSX,
    ".md": FormatTag.MARKDOWN,
    ".txt": FormatTag.TEXT,
}
