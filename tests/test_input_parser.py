"""Tests for universe parsing."""

from utils.input_parser import normalize_symbols, parse_input_file


class TestNormalizeSymbols:
    def test_uppercase_dedup_keeps_order(self):
        assert normalize_symbols([" msft", "AAPL", "msft", ""]) == ["MSFT", "AAPL"]


class TestParseInputFile:
    def test_mixed_separators_and_comments(self, tmp_path):
        f = tmp_path / "input.txt"
        f.write_text("# Universe\nAAPL, MSFT GOOGL\n\nJPM  # banks\naapl\n")
        assert parse_input_file(str(f)) == ["AAPL", "MSFT", "GOOGL", "JPM"]

    def test_default_file_has_seed_universe(self):
        symbols = parse_input_file()
        assert "AAPL" in symbols
        assert len(symbols) == 11
