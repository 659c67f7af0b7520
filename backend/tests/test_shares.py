"""Tests for share links, folder locks and lock-aware search."""

import pytest

from clouddrive.core.token_factory import now_ms
from clouddrive.exceptions import FileNotFoundInDriveError, ValidationError
from clouddrive.services.folder_service import FolderService
from clouddrive.services.lifecycle_service import LifecycleService
from clouddrive.services.share_service import DAY_MS, HOUR_MS, ShareService, compute_share_expiry, is_share_live


class TestComputeShareExpiry:

    @pytest.mark.parametrize("choice, offset", [
        ("1h", HOUR_MS),
        ("24h", DAY_MS),
        ("7d", 7 * DAY_MS),
        ("bogus", DAY_MS),
        ("custom", DAY_MS),
    ])
    def test_presets(self, choice, offset):
        assert compute_share_expiry(choice, 1000) == 1000 + offset

    def test_never_expires(self):
        assert compute_share_expiry("0", 1000) is None

    def test_custom_timestamp(self):
        assert compute_share_expiry("custom", 1000, custom_expires_at=5000) == 5000


class TestFileShares:

    def test_create_and_resolve(self, db, user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        service = ShareService(db)

        token = service.create_share(file_id, "file", "1h", user.id)

        assert len(token) == 16
        assert service.get_file_by_share_token(token).message_id == file_id
        assert service.get_folder_by_share_token(token) is None

    def test_new_share_replaces_old_token(self, db, user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        service = ShareService(db)
        first = service.create_share(file_id, "file", "1h", user.id)
        second = service.create_share(file_id, "file", "1h", user.id)

        assert first != second
        assert service.get_file_by_share_token(first) is None

    def test_expired_share_is_not_resolved(self, db, user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        service = ShareService(db)
        token = service.create_share(file_id, "file", "custom", user.id, custom_expires_at=now_ms() - 1)

        assert service.get_file_by_share_token(token) is None
        assert service.get_active_shares(user.id) == []

    def test_trashed_file_is_not_resolved(self, db, user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        service = ShareService(db)
        token = service.create_share(file_id, "file", "0", user.id)
        LifecycleService(db).soft_delete_items([file_id], [], user.id)

        assert service.get_file_by_share_token(token) is None

    def test_cancel(self, db, user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        service = ShareService(db)
        token = service.create_share(file_id, "file", "0", user.id, password="pw")

        service.cancel_share(file_id, "file", user.id)

        assert service.get_file_by_share_token(token) is None
        item = service.get_item(file_id, "file", user.id)
        assert (item.share_token, item.share_expires_at, item.share_password) == (None, None, None)

    def test_password_is_hashed_and_verified(self, db, user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        service = ShareService(db)
        service.create_share(file_id, "file", "0", user.id, password="open-sesame")
        item = service.get_item(file_id, "file", user.id)

        assert item.share_password != "open-sesame"
        assert ShareService.verify_share_password(item, "open-sesame")
        assert not ShareService.verify_share_password(item, "wrong")
        assert not ShareService.verify_share_password(item, None)

    def test_other_users_item_not_shareable(self, db, user, other_user, root, make_file):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        with pytest.raises(FileNotFoundInDriveError):
            ShareService(db).create_share(file_id, "file", "1h", other_user.id)

    def test_unknown_item_type(self, db, user):
        with pytest.raises(ValidationError):
            ShareService(db).create_share("1", "album", "1h", user.id)


class TestActiveShares:

    def test_lists_live_file_and_folder_shares(self, db, user, root, make_file, make_folder):
        file_id = make_file(root.id, user.id, "a.txt").message_id
        folder_id = make_folder("Docs", root.id, user.id).id
        service = ShareService(db)
        service.create_share(file_id, "file", "1h", user.id)
        service.create_share(folder_id, "folder", "0", user.id)

        shares = service.get_active_shares(user.id)

        assert len(shares) == 2
        assert all(is_share_live(s) for s in shares)


class TestFolderLocks:

    def test_lock_and_verify(self, db, user, root, make_folder):
        folder_id = make_folder("Private", root.id, user.id).id
        service = ShareService(db)

        folder = service.set_folder_password(folder_id, "pw", user.id)

        assert folder.is_locked
        assert service.verify_folder_password(folder_id, "pw", user.id)
        assert not service.verify_folder_password(folder_id, "nope", user.id)
        assert not service.verify_folder_password(folder_id, "", user.id)

    def test_unlock_with_empty_password(self, db, user, root, make_folder):
        folder_id = make_folder("Private", root.id, user.id).id
        service = ShareService(db)
        service.set_folder_password(folder_id, "pw", user.id)

        assert not service.set_folder_password(folder_id, None, user.id).is_locked
        assert service.verify_folder_password(folder_id, "", user.id)

    def test_path_lock_is_inherited(self, db, user, root, make_folder):
        top = make_folder("Private", root.id, user.id).id
        inner = make_folder("Inner", top, user.id).id
        service = ShareService(db)

        assert not service.is_path_locked(inner, user.id)
        service.set_folder_password(top, "pw", user.id)
        assert service.is_path_locked(inner, user.id)
        assert not service.is_path_locked(root.id, user.id)

    def test_search_skips_locked_subtrees(self, db, user, root, make_folder, make_file):
        private = make_folder("Private", root.id, user.id).id
        inner = make_folder("report-drafts", private, user.id).id
        make_file(inner, user.id, "report-1.txt")
        make_file(root.id, user.id, "report-2.txt")
        ShareService(db).set_folder_password(private, "pw", user.id)

        hits = FolderService(db).search("report", user.id)

        assert [f.file_name for f in hits["files"]] == ["report-2.txt"]
        assert hits["folders"] == []

    def test_search_matches_literal_wildcards(self, db, user, root, make_file):
        make_file(root.id, user.id, "100%.txt")
        make_file(root.id, user.id, "1000.txt")

        hits = FolderService(db).search("0%", user.id)

        assert [f.file_name for f in hits["files"]] == ["100%.txt"]
