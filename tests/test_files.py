"""Tests for file name sanitization."""

from budget_digitizer.utils.files import sanitize_file_name


class TestSanitizeFileName:
    """Tests for sanitize_file_name."""

    def test_forbidden_characters_replaced(self) -> None:
        assert sanitize_file_name('contrato<>:"/\\|?*.docx') == "contrato_________.docx"

    def test_percent_replaced(self) -> None:
        assert sanitize_file_name("100%.json") == "100_.json"

    def test_clean_name_unchanged(self) -> None:
        assert sanitize_file_name("orcamento 2024.json") == "orcamento 2024.json"

    def test_empty_gets_fallback(self) -> None:
        name = sanitize_file_name("", default_suffix=".pdf")
        assert name.startswith("document-")
        assert name.endswith(".pdf")

    def test_none_gets_fallback(self) -> None:
        assert sanitize_file_name(None).endswith(".json")
