"""
Test candidate discovery: filtering, ordering and the reserved subtree.
"""

import os

import pytest

from photoorg.constants import META_DIRNAME
from photoorg.scanner import Scanner, scan


class TestScanner:
    """Test scanning rules."""

    def test_extension_filter_is_case_insensitive(self, create_test_files):
        source = create_test_files([
            {"name": "a.jpg"},
            {"name": "b.JPG"},
            {"name": "c.Jpeg"},
            {"name": "notes.txt"},
            {"name": "noext"},
        ])

        names = [c.name for c in scan([source], ["JPG", ".jpeg"])]

        assert names == ["a.jpg", "b.JPG", "c.Jpeg"]

    def test_lexicographic_order_files_before_subdirs(self, create_test_files):
        source = create_test_files([
            {"name": "z.jpg"},
            {"name": "a/2.jpg"},
            {"name": "a/1.jpg"},
            {"name": "b.jpg"},
            {"name": "a/sub/0.jpg"},
        ])

        rel = [c.path.relative_to(source.resolve()).as_posix() for c in scan([source], ["jpg"])]

        assert rel == ["b.jpg", "z.jpg", "a/1.jpg", "a/2.jpg", "a/sub/0.jpg"]

    def test_scan_is_restartable(self, create_test_files):
        source = create_test_files([{"name": "a.jpg"}, {"name": "b.jpg"}])
        scanner = Scanner([source], ["jpg"])

        first = [c.path for c in scanner.scan()]
        second = [c.path for c in scanner.scan()]

        assert first == second
        assert len(first) == 2

    def test_scan_is_lazy(self, create_test_files):
        source = create_test_files([{"name": "a.jpg"}, {"name": "b.jpg"}])

        iterator = scan([source], ["jpg"])
        first = next(iterator)
        (source / "b.jpg").unlink()

        assert first.name == "a.jpg"
        assert [c.name for c in iterator] == []

    def test_candidate_attributes(self, create_test_files):
        source = create_test_files([{"name": "Photo.JPG", "content": b"12345"}])

        (candidate,) = list(scan([source], ["jpg"]))

        assert candidate.size == 5
        assert candidate.extension == "jpg"
        assert candidate.name == "Photo.JPG"

    def test_reserved_subtree_excluded_even_under_input(self, create_test_files):
        source = create_test_files([
            {"name": "a.jpg"},
            {"name": f"lib/{META_DIRNAME}/hidden.jpg"},
            {"name": "lib/2025/03/b.jpg"},
        ])

        names = [c.name for c in scan([source], ["jpg"], reserved=[source / "lib" / META_DIRNAME])]

        assert names == ["a.jpg", "b.jpg"]

    def test_non_recursive(self, create_test_files):
        source = create_test_files([{"name": "a.jpg"}, {"name": "sub/b.jpg"}])

        names = [c.name for c in scan([source], ["jpg"], recursive=False)]

        assert names == ["a.jpg"]

    def test_inputs_scanned_in_configured_order(self, tmp_path, create_test_files):
        first = create_test_files([{"name": "z.jpg"}], base=tmp_path / "first")
        second = create_test_files([{"name": "a.jpg"}], base=tmp_path / "second")

        names = [c.name for c in scan([first, second], ["jpg"])]

        assert names == ["z.jpg", "a.jpg"]

    def test_overlapping_inputs_not_scanned_twice(self, tmp_path, create_test_files):
        root = create_test_files([{"name": "a.jpg"}, {"name": "nested/b.jpg"}], base=tmp_path / "root")

        nested_first = [c.name for c in scan([root / "nested", root], ["jpg"])]
        nested_last = [c.name for c in scan([root, root / "nested"], ["jpg"])]

        assert sorted(nested_first) == ["a.jpg", "b.jpg"]
        assert nested_last == ["a.jpg", "b.jpg"]

    def test_missing_input_is_skipped(self, tmp_path, create_test_files):
        source = create_test_files([{"name": "a.jpg"}])

        names = [c.name for c in scan([tmp_path / "missing", source], ["jpg"])]

        assert names == ["a.jpg"]

    def test_symlinks_excluded(self, create_test_files):
        source = create_test_files([{"name": "a.jpg"}])
        try:
            os.symlink(source / "a.jpg", source / "link.jpg")
        except OSError:
            pytest.skip("symlinks not supported")

        excluded = []
        scanner = Scanner([source], ["jpg"], on_excluded=lambda p, r: excluded.append((p.name, r)))

        assert [c.name for c in scanner.scan()] == ["a.jpg"]
        assert excluded == [("link.jpg", "symlink")]

    def test_excluded_callback(self, create_test_files):
        source = create_test_files([{"name": "a.jpg"}, {"name": "b.png"}, {"name": "c.txt"}])
        excluded = []

        scanner = Scanner([source], ["jpg"], on_excluded=lambda p, r: excluded.append(p.name))
        list(scanner.scan())

        assert excluded == ["b.png", "c.txt"]
