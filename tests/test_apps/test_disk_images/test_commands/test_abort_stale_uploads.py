"""Tests for abort_stale_uploads management command."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from server.apps.disk_images.exceptions import StoreError
from server.apps.disk_images.logic import multipart
from server.apps.disk_images.logic.multipart import open_session


class TestAbortStaleUploadsCommand:
    """Tests for abort_stale_uploads management command."""

    def test_aborts_old_sessions(self, mock_s3, open_uploads):
        """Test sessions older than the cutoff are aborted."""
        open_session('abandoned.iso')
        open_session('forgotten.iso')

        out = StringIO()
        call_command('abort_stale_uploads', '--older-than-hours', '0', stdout=out)

        assert 'Aborted 2 uploads, 0 failed' in out.getvalue()
        assert open_uploads() == []

    def test_preserves_recent_sessions(self, mock_s3, monkeypatch, open_uploads):
        """Test only sessions older than the default age are aborted."""
        recent = open_session('in-progress.iso')
        stale = open_session('abandoned.iso')
        now = timezone.now()

        monkeypatch.setattr(
            'server.apps.disk_images.management.commands.'
            'abort_stale_uploads.list_open_sessions',
            lambda: [
                (stale, now - timedelta(hours=48)),
                (recent, now - timedelta(hours=1)),
            ],
        )

        out = StringIO()
        call_command('abort_stale_uploads', stdout=out)

        assert 'Aborted 1 uploads, 0 failed' in out.getvalue()
        assert [upload['Key'] for upload in open_uploads()] == [
            'in-progress.iso',
        ]

    def test_dry_run(self, mock_s3, open_uploads):
        """Test dry run lists sessions without aborting them."""
        session = open_session('abandoned.iso')

        out = StringIO()
        call_command(
            'abort_stale_uploads',
            '--older-than-hours',
            '0',
            '--dry-run',
            stdout=out,
        )

        output = out.getvalue()
        assert f'Would abort: abandoned.iso (upload id: {session.upload_id}' in (
            output
        )
        assert 'Would abort 1 uploads' in output
        assert len(open_uploads()) == 1

    def test_counts_failures(self, mock_s3, monkeypatch):
        """Test sessions that cannot be aborted are counted as failed."""
        open_session('stuck.iso')

        def refuse(session):
            raise StoreError('store unavailable')

        monkeypatch.setattr(
            'server.apps.disk_images.management.commands.'
            'abort_stale_uploads.abort_session',
            refuse,
        )

        out = StringIO()
        err = StringIO()
        call_command(
            'abort_stale_uploads',
            '--older-than-hours',
            '0',
            stdout=out,
            stderr=err,
        )

        assert 'Aborted 0 uploads, 1 failed' in out.getvalue()
        assert 'Failed to abort stuck.iso' in err.getvalue()

    def test_listing_failure(self, mock_s3, monkeypatch):
        """Test a store failure while listing ends the command cleanly."""
        def broken():
            raise StoreError('store unavailable')

        monkeypatch.setattr(
            'server.apps.disk_images.management.commands.'
            'abort_stale_uploads.list_open_sessions',
            broken,
        )

        with pytest.raises(CommandError, match='store unavailable'):
            call_command('abort_stale_uploads', stdout=StringIO())

    def test_empty_bucket(self, mock_s3):
        """Test nothing happens without open sessions."""
        out = StringIO()
        call_command('abort_stale_uploads', '--older-than-hours', '0', stdout=out)

        assert 'Aborted 0 uploads, 0 failed' in out.getvalue()
        assert multipart.list_open_sessions() == []
