from estate_assistant.documents.extraction import (
    ExtractedText,
    ExtractorRegistry,
    ModelReadable,
    PlainTextExtractor,
    Unsupported,
    default_registry,
)


class TestDefaultRegistry:
    def setup_method(self):
        self.registry = default_registry()

    def test_plain_text_is_decoded(self):
        result = self.registry.extract("notes.txt", "text/plain", b"  Rent is due on the 1st.\n")
        assert result == ExtractedText(text="Rent is due on the 1st.")
        assert result.has_text_content

    def test_media_type_parameters_are_ignored(self):
        result = self.registry.extract("notes.txt", "text/plain; charset=utf-8", b"hello")
        assert isinstance(result, ExtractedText)

    def test_pdf_is_read_by_the_model(self):
        result = self.registry.extract("lease.pdf", "application/pdf", b"%PDF-1.4")
        assert isinstance(result, ModelReadable)
        assert result.has_text_content
        assert "lease.pdf" in result.text

    def test_images_are_read_by_the_model(self):
        assert isinstance(self.registry.extract("a.png", "image/png", b"\x89PNG"), ModelReadable)
        assert isinstance(self.registry.extract("a.jpg", "image/jpeg", b"\xff\xd8"), ModelReadable)

    def test_word_documents_are_unsupported(self):
        result = self.registry.extract(
            "deed.docx",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            b"PK\x03\x04",
        )
        assert isinstance(result, Unsupported)
        assert not result.has_text_content
        assert result.text

    def test_missing_media_type(self):
        assert isinstance(self.registry.extract("blob", None, b"x"), Unsupported)


class TestPlainTextExtractor:
    def test_empty_file(self):
        result = PlainTextExtractor().extract("empty.txt", b"   \n")
        assert isinstance(result, Unsupported)

    def test_invalid_bytes_are_replaced(self):
        result = PlainTextExtractor().extract("odd.txt", b"caf\xff")
        assert isinstance(result, ExtractedText)
        assert result.text.startswith("caf")


def test_registering_a_strategy_overrides_lookup():
    registry = ExtractorRegistry()
    registry.register("Text/Plain", PlainTextExtractor())
    assert registry.get("text/plain") is not None
    assert registry.get("application/pdf") is None
