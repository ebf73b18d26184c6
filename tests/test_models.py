"""Tests for the role enumeration and the stored file lifecycle."""

from datetime import datetime, timezone

import pytest

from filevault.exceptions import AlreadyDeleted
from filevault.models.file import FileState, StoredFile
from filevault.models.user import Role


class TestRole:
    """Tests for Role parsing and capability checks."""

    @pytest.mark.parametrize('raw', ['ADMIN', 'admin', ' Admin '])
    def test_parse_normalizes_case(self, raw):
        """Test non-canonical casing is accepted."""
        assert Role.parse(raw) is Role.ADMIN

    @pytest.mark.parametrize('raw', ['root', '', None, 'superuser'])
    def test_parse_rejects_unknown(self, raw):
        """Test unknown roles raise ValueError."""
        with pytest.raises(ValueError):
            Role.parse(raw)

    def test_admin_allows_everything(self):
        assert Role.ADMIN.allows(Role.ADMIN)
        assert Role.ADMIN.allows(Role.USER)

    def test_user_allows_only_user(self):
        assert Role.USER.allows(Role.USER)
        assert not Role.USER.allows(Role.ADMIN)


class TestStoredFileLifecycle:
    """Tests for the ACTIVE -> SOFT_DELETED transition."""

    def _file(self):
        return StoredFile(
            filename='a.txt',
            blob_name='a.txt',
            content_type='text/plain',
            size=1,
            is_deleted=False,
        )

    def test_new_file_is_active(self):
        assert self._file().state is FileState.ACTIVE

    def test_soft_delete_sets_flags(self):
        """Test soft delete marks the row and stamps the time."""
        stored_file = self._file()
        when = datetime(2024, 10, 30, 12, 0, tzinfo=timezone.utc)

        stored_file.soft_delete(when)

        assert stored_file.state is FileState.SOFT_DELETED
        assert stored_file.is_deleted is True
        assert stored_file.deleted_at == when

    def test_soft_delete_defaults_to_now(self):
        stored_file = self._file()
        stored_file.soft_delete()
        assert stored_file.deleted_at is not None

    def test_second_soft_delete_rejected(self):
        """Test SOFT_DELETED is terminal for the normal flow."""
        stored_file = self._file()
        stored_file.soft_delete()
        first = stored_file.deleted_at

        with pytest.raises(AlreadyDeleted):
            stored_file.soft_delete()
        assert stored_file.deleted_at == first
