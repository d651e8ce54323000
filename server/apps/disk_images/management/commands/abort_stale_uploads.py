"""Management command to abort abandoned multipart uploads."""

import logging
from datetime import timedelta
from typing import Any, Final, final, override

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from server.apps.disk_images.exceptions import DiskImageError
from server.apps.disk_images.logic.multipart import (
    abort_session,
    list_open_sessions,
)

_DEFAULT_MAX_AGE_HOURS: Final = 24

logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Abort multipart uploads that were never completed."""

    help = 'Abort multipart uploads started more than N hours ago'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--older-than-hours',
            type=int,
            default=None,
            help='Minimum session age (default: DISK_IMAGES_STALE_UPLOAD_HOURS)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be aborted without aborting',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If the open uploads cannot be listed.
        """
        dry_run = options['dry_run']
        max_age = options['older_than_hours']
        if max_age is None:
            max_age = getattr(
                settings,
                'DISK_IMAGES_STALE_UPLOAD_HOURS',
                _DEFAULT_MAX_AGE_HOURS,
            )

        cutoff = timezone.now() - timedelta(hours=max_age)
        self.stdout.write(
            f'Looking for uploads started before {cutoff} '
            f'(older than {max_age} hours)',
        )

        try:
            sessions = list_open_sessions()
        except DiskImageError as exc:
            logger.exception('Failed to list multipart uploads')
            raise CommandError(f'Cannot list uploads: {exc}') from exc

        count = 0
        failed = 0

        for session, initiated in sessions:
            if initiated > cutoff:
                continue

            if dry_run:
                self.stdout.write(
                    f'Would abort: {session.key} '
                    f'(upload id: {session.upload_id}, started: {initiated})',
                )
                count += 1
                continue

            try:
                abort_session(session)
                count += 1
                logger.info(
                    'Aborted stale upload %s for %s',
                    session.upload_id,
                    session.key,
                )
            except DiskImageError as exc:
                self.stderr.write(f'Failed to abort {session.key}: {exc}')
                logger.exception(
                    'Failed to abort stale upload: %s',
                    session.upload_id,
                )
                failed += 1

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would abort {count} uploads'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Aborted {count} uploads, {failed} failed',
                ),
            )
