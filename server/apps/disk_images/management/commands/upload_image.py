"""Management command to upload a local disk image."""

import logging
from pathlib import Path
from typing import Any, final, override

from django.core.management.base import BaseCommand, CommandError

from server.apps.disk_images.exceptions import DiskImageError
from server.apps.disk_images.logic.file_operations import upload_image

logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Upload a disk image from the local file system."""

    help = 'Upload a local disk image, in parts when it is large'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument('path', type=Path, help='Local file to upload')
        parser.add_argument(
            '--name',
            type=str,
            default=None,
            help='Object name in the bucket (default: the file name)',
        )
        parser.add_argument(
            '--part-size',
            type=int,
            default=None,
            help='Part size in bytes (default: from settings)',
        )
        parser.add_argument(
            '--workers',
            type=int,
            default=None,
            help='Parts uploaded in parallel (default: from settings)',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the upload.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If the file is missing or the upload fails.
        """
        path: Path = options['path']
        if not path.is_file():
            raise CommandError(f'No such file: {path}')

        name = options['name'] or path.name
        size = path.stat().st_size

        self.stdout.write(f'Uploading {path} as {name} ({size} bytes)')

        try:
            with path.open('rb') as file_obj:
                result = upload_image(
                    name,
                    file_obj,
                    size,
                    progress=self._report_progress,
                    part_size=options['part_size'],
                    max_workers=options['workers'],
                )
        except DiskImageError as exc:
            logger.exception('Upload of %s failed', path)
            raise CommandError(f'Upload failed: {exc}') from exc

        self.stdout.write(
            self.style.SUCCESS(
                f'Uploaded {result.name} ({result.size} bytes, '
                f'{result.path.value})',
            ),
        )

    def _report_progress(self, done: int, total: int) -> None:
        """Print part progress.

        Args:
            done: Parts accepted so far.
            total: Parts in the upload.
        """
        self.stdout.write(f'Part {done}/{total} uploaded')
