"""Tests for version tokenization."""

import threading

from deptidy.version_parser import VersionParser, parse_version


class TestVersionParser:
    """Tests for the VersionParser class."""

    def test_dotted_numeric_version(self):
        """Test a plain dotted version splits on every separator."""
        version = parse_version("2.17.0")

        assert version.source == "2.17.0"
        assert version.parts == ("2", "17", "0")
        assert version.numeric_parts == (2, 17, 0)

    def test_qualifier_with_trailing_number(self):
        """Test a transition between letters and digits starts a new part."""
        version = parse_version("1.2-beta4")

        assert version.parts == ("1", "2", "beta", "4")
        assert version.numeric_parts == (1, 2, None, 4)

    def test_digits_after_letters_without_separator(self):
        """Test milestone style versions like 3.0.0M1."""
        version = parse_version("3.0.0M1")

        assert version.parts == ("3", "0", "0", "M", "1")
        assert version.numeric_parts[3] is None
        assert version.numeric_parts[4] == 1

    def test_all_separators(self):
        """Test dot, dash, underscore and plus are all separators."""
        version = parse_version("1_2+3-4")

        assert version.parts == ("1", "2", "3", "4")

    def test_release_suffix(self):
        """Test a RELEASE qualifier is kept as a literal part."""
        version = parse_version("5.3.39.RELEASE")

        assert version.parts == ("5", "3", "39", "RELEASE")
        assert version.numeric_parts == (5, 3, 39, None)

    def test_huge_number_is_not_numeric(self):
        """Test a part beyond 64 bits falls back to a literal."""
        version = parse_version("1.99999999999999999999999")

        assert version.parts[1] == "99999999999999999999999"
        assert version.numeric_parts[1] is None

    def test_empty_version(self):
        """Test an empty version has no parts."""
        version = parse_version("")

        assert version.parts == ()
        assert version.numeric_parts == ()

    def test_str_is_source(self):
        """Test a version prints as its original string."""
        assert str(parse_version("1.0-SNAPSHOT")) == "1.0-SNAPSHOT"

    def test_transform_is_cached(self):
        """Test the same input returns the same object."""
        parser = VersionParser()

        first = parser.transform("4.13.2")
        second = parser.transform("4.13.2")

        assert first is second
        assert len(parser) == 1

    def test_concurrent_transform_yields_one_instance(self):
        """Test concurrent callers see a single cached token."""
        parser = VersionParser()
        results = []

        def worker():
            results.append(parser.transform("1.2.3"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(v) for v in results}) == 1
