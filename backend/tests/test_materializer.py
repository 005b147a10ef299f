import io
import logging
import os
import zipfile

import pytest

from dropshare import crud
from dropshare.core.errors import StorageBackendFailure
from dropshare.services.materializer import ArchiveJob, collect_files


def arcnames(entries):
    return sorted(entry.arcname for entry in entries)


@pytest.fixture
def owner(make_user):
    return make_user()


@pytest.fixture
def tree(owner, make_folder, make_file):
    """
    root/
      readme.txt
      photos/
        cat.jpg
        2025/
          dog.jpg
    """
    root = make_folder(owner, "root")
    photos = make_folder(owner, "photos", parent=root)
    year = make_folder(owner, "2025", parent=photos)
    make_file(owner, "readme.txt", b"read me", folder=root)
    make_file(owner, "cat.jpg", b"meow", folder=photos)
    make_file(owner, "dog.jpg", b"woof", folder=year)
    return root, photos, year


class TestCollectFiles:
    def test_paths_are_relative_to_the_shared_folder(self, db, tree):
        root, _, _ = tree
        assert arcnames(collect_files(db, root.id)) == [
            "photos/2025/dog.jpg",
            "photos/cat.jpg",
            "readme.txt",
        ]

    def test_trashed_files_are_left_out(self, db, owner, tree, make_file):
        root, photos, _ = tree
        trashed = make_file(owner, "old.jpg", b"old", folder=photos)
        crud.file.soft_remove(db, file=trashed)
        assert "photos/old.jpg" not in arcnames(collect_files(db, root.id))

    def test_trashed_subfolder_prunes_its_subtree(self, db, tree):
        root, photos, _ = tree
        crud.folder.soft_remove(db, folder=photos)
        assert arcnames(collect_files(db, root.id)) == ["readme.txt"]

    def test_empty_folder_yields_nothing(self, db, owner, make_folder):
        assert collect_files(db, make_folder(owner, "empty").id) == []

    def test_clashing_names_get_suffixes(self, db, owner, make_folder, make_file):
        root = make_folder(owner, "root")
        make_file(owner, "notes.txt", b"1", folder=root)
        second = make_file(owner, "other.txt", b"2", folder=root)
        crud.file.update(db, db_obj=second, obj_in={"original_name": "notes.txt"})
        assert arcnames(collect_files(db, root.id)) == ["notes (1).txt", "notes.txt"]

    def test_cycle_is_skipped(self, db, owner, make_folder, make_file, caplog):
        a = make_folder(owner, "a")
        b = make_folder(owner, "b", parent=a)
        make_file(owner, "inside.txt", b"x", folder=b)
        a.parent_id = b.id
        db.add(a)
        db.commit()

        with caplog.at_level(logging.WARNING):
            entries = collect_files(db, a.id)

        assert arcnames(entries) == ["b/inside.txt"]
        assert "cycle" in caplog.text


class TestArchiveJob:
    def test_archive_holds_every_entry(self, db, storage, tree, tmp_path):
        root, _, _ = tree
        job = ArchiveJob(storage, collect_files(db, root.id), "root_shared", temp_dir=str(tmp_path)).build()

        data = b"".join(job.iter_chunks())
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert sorted(zf.namelist()) == ["photos/2025/dog.jpg", "photos/cat.jpg", "readme.txt"]
            assert zf.read("photos/cat.jpg") == b"meow"
            assert zf.getinfo("readme.txt").compress_type == zipfile.ZIP_DEFLATED
        assert job.filename == "root_shared.zip"

    def test_temp_file_removed_after_streaming(self, db, storage, tree, tmp_path):
        root, _, _ = tree
        job = ArchiveJob(storage, collect_files(db, root.id), "root", temp_dir=str(tmp_path)).build()
        assert os.path.exists(job.path)
        assert job.size > 0

        list(job.iter_chunks())
        assert not os.path.exists(job.path)

    def test_temp_file_removed_when_stream_abandoned(self, db, storage, tree, tmp_path):
        root, _, _ = tree
        job = ArchiveJob(storage, collect_files(db, root.id), "root", temp_dir=str(tmp_path), chunk_size=16).build()
        chunks = job.iter_chunks()
        next(chunks)
        chunks.close()
        assert not os.path.exists(job.path)

    def test_cleanup_is_idempotent(self, db, storage, tree, tmp_path):
        root, _, _ = tree
        with ArchiveJob(storage, collect_files(db, root.id), "root", temp_dir=str(tmp_path)) as job:
            job.build()
            job.cleanup()
            job.cleanup()
        assert not os.path.exists(job.path)

    def test_missing_objects_are_skipped(self, db, storage, tree, tmp_path):
        root, photos, _ = tree
        entries = collect_files(db, root.id)
        cat = next(e for e in entries if e.arcname == "photos/cat.jpg")
        storage.delete(cat.file.storage_key)

        job = ArchiveJob(storage, entries, "root", temp_dir=str(tmp_path)).build()
        assert job.skipped == ["photos/cat.jpg"]
        data = b"".join(job.iter_chunks())
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert "photos/cat.jpg" not in zf.namelist()
            assert "readme.txt" in zf.namelist()

    def test_storage_failure_cleans_up_and_raises(self, db, storage, tree, tmp_path):
        root, _, _ = tree

        class BrokenStorage:
            def get(self, key, chunk_size=None):
                raise StorageBackendFailure("bucket unreachable")

        temp_dir = tmp_path / "archives"
        temp_dir.mkdir()
        job = ArchiveJob(BrokenStorage(), collect_files(db, root.id), "root", temp_dir=str(temp_dir))
        with pytest.raises(StorageBackendFailure):
            job.build()
        assert list(temp_dir.iterdir()) == []
