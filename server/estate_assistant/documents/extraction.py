"""Best-effort text extraction for uploaded documents.

Each media type maps to one strategy. A strategy either decodes text itself,
reports that the model reads the bytes directly (PDFs, images are forwarded
as inline data), or is explicitly unsupported.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedText:
    text: str
    has_text_content: bool = True


@dataclass(frozen=True)
class ModelReadable:
    placeholder: str
    has_text_content: bool = True

    @property
    def text(self) -> str:
        return self.placeholder


@dataclass(frozen=True)
class Unsupported:
    placeholder: str
    has_text_content: bool = False

    @property
    def text(self) -> str:
        return self.placeholder


Extraction = Union[ExtractedText, ModelReadable, Unsupported]


class Extractor(Protocol):
    def extract(self, name: str, data: bytes) -> Extraction:
        ...


class PlainTextExtractor:
    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def extract(self, name: str, data: bytes) -> Extraction:
        text = data.decode(self.encoding, errors="replace").strip()
        if not text:
            return Unsupported(placeholder=f"[{name} is empty]")
        return ExtractedText(text=text)


class ModelReadableExtractor:
    def __init__(self, label: str) -> None:
        self.label = label

    def extract(self, name: str, data: bytes) -> Extraction:
        return ModelReadable(placeholder=f"[{self.label}: {name} ({len(data)} bytes), read by the assistant]")


class ExtractorRegistry:
    def __init__(self) -> None:
        self._extractors: Dict[str, Extractor] = {}

    def register(self, mime_type: str, extractor: Extractor) -> None:
        self._extractors[mime_type.lower()] = extractor

    def get(self, mime_type: Optional[str]) -> Optional[Extractor]:
        if not mime_type:
            return None
        # Ignore parameters such as "; charset=utf-8"
        return self._extractors.get(mime_type.split(";", 1)[0].strip().lower())

    def extract(self, name: str, mime_type: Optional[str], data: bytes) -> Extraction:
        extractor = self.get(mime_type)
        if extractor is None:
            logger.debug("No extractor for %s (%s)", name, mime_type)
            return Unsupported(placeholder=f"[Text extraction is not available for {mime_type or 'unknown type'}]")
        return extractor.extract(name, data)


def default_registry() -> ExtractorRegistry:
    registry = ExtractorRegistry()
    registry.register("text/plain", PlainTextExtractor())
    registry.register("application/pdf", ModelReadableExtractor("PDF document"))
    registry.register("image/jpeg", ModelReadableExtractor("Image"))
    registry.register("image/png", ModelReadableExtractor("Image"))
    return registry


extractors = default_registry()
