import hashlib
import os
from pathlib import Path

import pytest

from docsync.formats import FormatTag
from docsync.local import ROOT_ID, LocalFolderListing
from docsync.snapshot import build_snapshot


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "Sales" / "EMEA").mkdir(parents=True)
    (root / "Sales" / "Pricing.docx").write_bytes(b"docx bytes")
    (root / "Sales" / "EMEA" / "Deck.pptx").write_bytes(b"pptx bytes")
    (root / "Handbook.pdf").write_bytes(b"%PDF-1.7")
    (root / ".hidden.docx").write_bytes(b"hidden")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "pkg.pdf").write_bytes(b"skipped")
    return root


class TestLocalFolderListing:
    def test_lists_children_with_relative_ids(self, repo: Path) -> None:
        entries = LocalFolderListing(repo).list(ROOT_ID)
        assert [(e.id, e.is_container) for e in entries] == [("Handbook.pdf", False), ("Sales", True)]

    def test_file_entries_carry_change_metadata(self, repo: Path) -> None:
        [entry] = [e for e in LocalFolderListing(repo).list("Sales") if not e.is_container]
        assert entry.id == "Sales/Pricing.docx"
        assert entry.mime_type == FormatTag.DOCX.value
        assert entry.size_bytes == len(b"docx bytes")
        assert entry.content_digest == hashlib.sha256(b"docx bytes").hexdigest()
        assert entry.modified_at.tzinfo is not None

    def test_snapshot_over_directory_tree(self, repo: Path) -> None:
        snapshot = build_snapshot(LocalFolderListing(repo), ROOT_ID, retries=1)
        paths = {item.id: item.folder_path for item in snapshot.items}
        assert paths == {
            "Handbook.pdf": "",
            "Sales/EMEA/Deck.pptx": "Sales/EMEA",
            "Sales/Pricing.docx": "Sales",
        }

    def test_symlink_inside_root_resolves_to_target(self, repo: Path) -> None:
        os.symlink(repo / "Sales" / "Pricing.docx", repo / "Pricing link.docx")
        [link] = [e for e in LocalFolderListing(repo).list(ROOT_ID) if e.is_link]
        assert link.link_target is not None
        assert link.link_target.id == "Sales/Pricing.docx"
        snapshot = build_snapshot(LocalFolderListing(repo), ROOT_ID, retries=1)
        assert sorted(i.id for i in snapshot.items).count("Sales/Pricing.docx") == 1

    def test_symlink_outside_root_is_unresolved(self, repo: Path, tmp_path: Path) -> None:
        outside = tmp_path / "elsewhere.docx"
        outside.write_bytes(b"outside")
        os.symlink(outside, repo / "Elsewhere.docx")
        snapshot = build_snapshot(LocalFolderListing(repo), ROOT_ID, retries=1)
        [link] = [i for i in snapshot.items if i.is_link]
        assert link.id == "Elsewhere.docx"
        assert snapshot.links_unresolved == 1

    def test_download_reads_bytes(self, repo: Path) -> None:
        listing = LocalFolderListing(repo)
        snapshot = build_snapshot(listing, ROOT_ID, retries=1)
        [deck] = [i for i in snapshot.items if i.format_tag is FormatTag.PPTX]
        assert listing.download(deck) == b"pptx bytes"

    def test_root_must_be_a_directory(self, tmp_path: Path) -> None:
        with pytest.raises(NotADirectoryError):
            LocalFolderListing(tmp_path / "missing")
