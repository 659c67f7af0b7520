"""Tests for moving items and merging folders."""

import pytest

from clouddrive.exceptions import FolderNotFoundError, NameConflictError, SelfContainmentError, ValidationError
from clouddrive.models import Folder, StoredFile
from clouddrive.services.lifecycle_service import LifecycleService


def _folder(db, folder_id):
    return db.query(Folder).filter(Folder.id == folder_id).first()


def _file(db, message_id):
    return db.query(StoredFile).filter(StoredFile.message_id == message_id).first()


def _active_names(db, folder_id):
    files = db.query(StoredFile).filter(StoredFile.folder_id == folder_id, StoredFile.is_deleted == 0).all()
    folders = db.query(Folder).filter(Folder.parent_id == folder_id, Folder.is_deleted == 0).all()
    return {f.file_name for f in files} | {f.name + "/" for f in folders}


class TestMoveFiles:

    @pytest.fixture()
    def setup(self, db, user, root, make_folder, make_file):
        a = make_folder("A", root.id, user.id)
        return {
            "A": a.id,
            "in_root": make_file(root.id, user.id, "r.txt").message_id,
            "in_a": make_file(a.id, user.id, "r.txt").message_id,
        }

    def test_move_without_conflict(self, db, user, root, setup, make_file):
        moved = make_file(root.id, user.id, "other.txt").message_id

        result = LifecycleService(db).move_items([moved], [], setup["A"], user.id)

        assert result.processed == 1
        assert _file(db, moved).folder_id == setup["A"]

    def test_rename_on_conflict(self, db, user, root, setup):
        result = LifecycleService(db).move_items([setup["in_a"]], [], root.id, user.id, conflict_mode="rename")

        assert result.renamed == 1
        moved = _file(db, setup["in_a"])
        assert (moved.folder_id, moved.file_name) == (root.id, "r (1).txt")
        assert _file(db, setup["in_root"]).file_name == "r.txt"

    def test_overwrite_trashes_occupant(self, db, user, root, setup):
        result = LifecycleService(db).move_items([setup["in_a"]], [], root.id, user.id, conflict_mode="overwrite")

        assert result.overwritten == 1
        moved = _file(db, setup["in_a"])
        assert (moved.folder_id, moved.file_name, moved.is_deleted) == (root.id, "r.txt", 0)
        occupant = _file(db, setup["in_root"])
        assert occupant.is_deleted == 1
        assert occupant.file_name.startswith("r.txt_overwritten_")

    def test_skip_leaves_file_in_place(self, db, user, root, setup):
        result = LifecycleService(db).move_items([setup["in_a"]], [], root.id, user.id, conflict_mode="skip")

        assert result.skipped == 1
        assert result.processed == 0
        assert _file(db, setup["in_a"]).folder_id == setup["A"]

    def test_same_folder_is_skipped(self, db, user, setup):
        result = LifecycleService(db).move_items([setup["in_a"]], [], setup["A"], user.id)
        assert result.skipped == 1

    def test_trashed_target_rejected(self, db, user, setup, make_folder, root):
        target = make_folder("T", root.id, user.id).id
        service = LifecycleService(db)
        service.soft_delete_items([], [target], user.id)

        with pytest.raises(FolderNotFoundError):
            service.move_items([setup["in_a"]], [], target, user.id)

    def test_unknown_mode_rejected(self, db, user, root, setup):
        with pytest.raises(ValidationError):
            LifecycleService(db).move_items([setup["in_a"]], [], root.id, user.id, conflict_mode="merge")


class TestMoveFolders:

    @pytest.fixture()
    def setup(self, db, user, root, make_folder, make_file):
        """root/{A/{x.txt, S/}, B/{A/{y.txt}}}"""
        a = make_folder("A", root.id, user.id)
        s = make_folder("S", a.id, user.id)
        b = make_folder("B", root.id, user.id)
        b_a = make_folder("A", b.id, user.id)
        make_file(a.id, user.id, "x.txt")
        make_file(b_a.id, user.id, "y.txt")
        return {"A": a.id, "S": s.id, "B": b.id, "B/A": b_a.id}

    def test_move_into_own_descendant_refused(self, db, user, setup):
        with pytest.raises(SelfContainmentError):
            LifecycleService(db).move_items([], [setup["A"]], setup["S"], user.id)
        assert _folder(db, setup["A"]).parent_id != setup["S"]

    def test_move_into_itself_refused(self, db, user, setup):
        with pytest.raises(SelfContainmentError):
            LifecycleService(db).move_items([], [setup["A"]], setup["A"], user.id)

    def test_root_cannot_be_moved(self, db, user, root, setup):
        with pytest.raises(ValidationError):
            LifecycleService(db).move_items([], [root.id], setup["B"], user.id)

    def test_rename_on_conflict(self, db, user, setup):
        result = LifecycleService(db).move_items([], [setup["A"]], setup["B"], user.id, conflict_mode="rename")

        assert result.renamed == 1
        moved = _folder(db, setup["A"])
        assert (moved.parent_id, moved.name) == (setup["B"], "A (1)")
        assert _active_names(db, setup["B"]) == {"A/", "A (1)/"}

    def test_overwrite_merges_and_removes_source(self, db, user, root, setup):
        result = LifecycleService(db).move_items([], [setup["A"]], setup["B"], user.id, conflict_mode="overwrite")

        assert result.merged == 1
        assert _active_names(db, setup["B/A"]) == {"x.txt", "y.txt", "S/"}
        assert _folder(db, setup["A"]) is None
        assert _folder(db, setup["S"]).parent_id == setup["B/A"]
        assert _active_names(db, root.id) == {"B/"}

    def test_skip_on_conflict(self, db, user, root, setup):
        result = LifecycleService(db).move_items([], [setup["A"]], setup["B"], user.id, conflict_mode="skip")

        assert result.skipped == 1
        assert _folder(db, setup["A"]).parent_id == root.id

    def test_move_without_conflict(self, db, user, setup):
        result = LifecycleService(db).move_items([], [setup["S"]], setup["B"], user.id)

        assert result.processed == 1
        assert _folder(db, setup["S"]).parent_id == setup["B"]


class TestMergeFolders:

    @pytest.fixture()
    def setup(self, db, user, root, make_folder, make_file):
        """root/{A/{x.txt, S/{s.txt}}, B/{x.txt, S/{t.txt}}}"""
        a = make_folder("A", root.id, user.id)
        a_s = make_folder("S", a.id, user.id)
        b = make_folder("B", root.id, user.id)
        b_s = make_folder("S", b.id, user.id)
        return {
            "A": a.id,
            "A/S": a_s.id,
            "B": b.id,
            "B/S": b_s.id,
            "A/x": make_file(a.id, user.id, "x.txt").message_id,
            "B/x": make_file(b.id, user.id, "x.txt").message_id,
            "s": make_file(a_s.id, user.id, "s.txt").message_id,
            "t": make_file(b_s.id, user.id, "t.txt").message_id,
        }

    def test_overwrite_merges_recursively(self, db, user, root, setup):
        result = LifecycleService(db).merge_folders(setup["A"], setup["B"], user.id, conflict_mode="overwrite")

        assert result.overwritten == 1
        assert result.merged == 2
        assert _active_names(db, setup["B"]) == {"x.txt", "S/"}
        assert _file(db, setup["A/x"]).folder_id == setup["B"]
        assert _file(db, setup["B/x"]).is_deleted == 1
        assert _active_names(db, setup["B/S"]) == {"s.txt", "t.txt"}
        assert _folder(db, setup["A"]) is None
        assert _folder(db, setup["A/S"]) is None

    def test_rename_keeps_both(self, db, user, setup):
        result = LifecycleService(db).merge_folders(setup["A"], setup["B"], user.id, conflict_mode="rename")

        assert result.renamed == 2
        assert _active_names(db, setup["B"]) == {"x.txt", "x (1).txt", "S/", "S (1)/"}
        assert _folder(db, setup["A/S"]).name == "S (1)"
        assert _folder(db, setup["A"]) is None

    def test_skip_leaves_conflicts_in_source(self, db, user, setup):
        result = LifecycleService(db).merge_folders(setup["A"], setup["B"], user.id, conflict_mode="skip")

        assert result.skipped == 2
        assert _active_names(db, setup["A"]) == {"x.txt", "S/"}
        assert _active_names(db, setup["B"]) == {"x.txt", "S/"}
        assert _file(db, setup["B/x"]).is_deleted == 0

    def test_root_cannot_be_merged_away(self, db, user, root, setup):
        with pytest.raises(ValidationError):
            LifecycleService(db).merge_folders(root.id, setup["B"], user.id)

    def test_merge_into_descendant_refused(self, db, user, setup):
        with pytest.raises(SelfContainmentError):
            LifecycleService(db).merge_folders(setup["A"], setup["A/S"], user.id)


class TestRename:

    def test_rename_folder_conflict(self, db, user, root, make_folder):
        make_folder("A", root.id, user.id)
        b = make_folder("B", root.id, user.id)
        with pytest.raises(NameConflictError):
            LifecycleService(db).rename_folder(b.id, "A", user.id)

    def test_rename_file(self, db, user, root, make_file):
        file = make_file(root.id, user.id, "a.txt")
        renamed = LifecycleService(db).rename_file(file.message_id, "b.txt", user.id)
        assert renamed.file_name == "b.txt"

    def test_rename_root_refused(self, db, user, root):
        with pytest.raises(ValidationError):
            LifecycleService(db).rename_folder(root.id, "Other", user.id)

    def test_create_folder_conflict(self, db, user, root, make_folder):
        make_folder("A", root.id, user.id)
        with pytest.raises(NameConflictError):
            LifecycleService(db).create_folder("A", root.id, user.id)

    def test_create_beside_trashed_namesake(self, db, user, root, make_folder):
        old = make_folder("A", root.id, user.id).id
        service = LifecycleService(db)
        service.soft_delete_items([], [old], user.id)

        fresh = service.create_folder("A", root.id, user.id)

        assert fresh.id != old
        assert fresh.is_deleted == 0
