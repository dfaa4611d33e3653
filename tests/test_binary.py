"""Tests for binary content extraction, summaries and store_binary()."""

import io

import pytest

from ragstore.errors import SummarizationFailed
from ragstore.providers.documents import (
    ContentAdapter,
    decode_text,
    extract_html_text,
    extract_pdf_text,
    is_text_type,
)

from tests.conftest import FailingMediaDescriber, MockMediaDescriber

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(64))


def blank_pdf() -> bytes:
    from pypdf import PdfWriter

    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


class TestExtraction:
    def test_text_types(self):
        assert is_text_type("text/plain")
        assert is_text_type("text/markdown")
        assert is_text_type("application/json")
        assert not is_text_type("image/png")
        assert not is_text_type("application/pdf")

    def test_decode_strips_bom_and_replaces_invalid(self):
        assert decode_text("\ufeffhello".encode("utf-8")) == "hello"
        assert decode_text(b"ok \xff") == "ok \ufffd"

    def test_html_scripts_and_styles_removed(self):
        html = (
            "<html><head><style>body { color: red; }</style></head>"
            "<body><h1>Title</h1><script>alert('x')</script><p>Body text</p></body></html>"
        )
        text = extract_html_text(html)
        assert "Title" in text
        assert "Body text" in text
        assert "alert" not in text
        assert "color" not in text

    def test_pdf_without_text_layer(self):
        assert extract_pdf_text(blank_pdf()) == ""

    def test_invalid_pdf(self):
        with pytest.raises(IOError):
            extract_pdf_text(b"not a pdf")


class TestContentAdapter:
    def test_binary_detection(self):
        adapter = ContentAdapter()
        assert adapter.is_binary("image/png")
        assert adapter.is_binary("application/pdf")
        assert not adapter.is_binary("text/html")

    def test_extract_by_type(self):
        adapter = ContentAdapter()
        assert adapter.extract(b"plain words", "text/plain") == "plain words"
        assert adapter.extract(b"<p>para</p>", "text/html") == "para"
        assert adapter.extract(PNG_BYTES, "image/png") == ""

    def test_summary_from_describer(self):
        describer = MockMediaDescriber()
        adapter = ContentAdapter(describer)
        assert adapter.summarize(PNG_BYTES, "image/png") == describer.caption
        assert adapter.summarize(b"%PDF", "application/pdf") is None

    def test_no_describer_no_summary(self):
        assert ContentAdapter().summarize(PNG_BYTES, "image/png") is None

    def test_describer_failure_wrapped(self):
        adapter = ContentAdapter(FailingMediaDescriber())
        with pytest.raises(SummarizationFailed) as exc:
            adapter.summarize(PNG_BYTES, "image/png")
        assert isinstance(exc.value.__cause__, RuntimeError)


class TestStoreBinary:
    def test_image_summary_becomes_content(self, make_engine, mock_media_describer):
        engine = make_engine(describer=mock_media_describer)

        metadata = engine.store_binary("photos/bike.png", PNG_BYTES, "image/png")

        assert metadata.is_binary is True
        assert metadata.summary == mock_media_describer.caption
        assert metadata.size_bytes == len(PNG_BYTES)
        assert metadata.mime_type == "image/png"
        assert engine.get("photos/bike.png") == mock_media_describer.caption + "\n\n"
        assert f"Summary: {mock_media_describer.caption}" in engine.get_chunk("photos/bike.png.metadata")

    def test_summary_precedes_extracted_text(self, make_engine):
        describer = MockMediaDescriber(caption="A scanned invoice")
        engine = make_engine(describer=describer)

        class ExtractingAdapter(ContentAdapter):
            def extract(self, data, mime_type):
                return "Invoice total 42"

        engine._content_adapter = ExtractingAdapter(describer)
        engine.store_binary("invoice", b"%PDF-1.4", "image/tiff")

        assert engine.get("invoice") == "A scanned invoice\n\nInvoice total 42"

    def test_image_found_by_summary(self, make_engine, mock_media_describer):
        engine = make_engine(describer=mock_media_describer)
        engine.store_binary("bike", PNG_BYTES, "image/png")
        engine.store("notes", "grocery list milk eggs")

        assert engine.relevant_items("red bicycle")[0] == "bike"

    def test_html_upload_is_not_binary(self, make_engine, mock_media_describer):
        engine = make_engine(describer=mock_media_describer)
        metadata = engine.store_binary(
            "page", b"<html><body><p>Hello page</p></body></html>", "text/html",
        )
        assert metadata.is_binary is False
        assert metadata.summary is None
        assert engine.get("page") == "Hello page"
        assert mock_media_describer.describe_calls == 0

    def test_without_describer(self, make_engine):
        engine = make_engine()
        metadata = engine.store_binary("blob", PNG_BYTES, "image/png", tags={"source": "camera"})
        assert metadata.is_binary is True
        assert metadata.summary is None
        assert engine.get("blob") == ""
        assert engine.get_metadata("blob").custom_tags == {"source": "camera"}

    def test_pdf_upload(self, make_engine):
        engine = make_engine()
        metadata = engine.store_binary("scan.pdf", blank_pdf(), "application/pdf")
        assert metadata.is_binary
        assert engine.exists("scan.pdf")

    def test_media_none_in_config_builds_adapter(self, tmp_path):
        from ragstore.api import DocumentEngine
        from ragstore.config import ProviderConfig, StoreConfig

        from tests.conftest import MockEmbeddingProvider, WordTokenizer

        config = StoreConfig(path=tmp_path, backend="memory", media=ProviderConfig("none"))
        with DocumentEngine(config=config, embedding_provider=MockEmbeddingProvider(),
                            tokenizer=WordTokenizer()) as engine:
            metadata = engine.store_binary("img", PNG_BYTES, "image/png")
        assert metadata.summary is None
