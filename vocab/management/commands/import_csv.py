"""
Management command to import cards from a CSV file.

    python manage.py import_csv words.csv --wordbook <id>
    python manage.py import_csv words.csv --name "TOEFL core" --level TOEFL
"""

from django.core.management.base import BaseCommand, CommandError

from vocab import csv_io, storage
from vocab.models import Wordbook


class Command(BaseCommand):
    help = 'Import cards from a CSV file into a new or existing wordbook'

    def add_arguments(self, parser):
        parser.add_argument('path', help='CSV file with a header row')
        target = parser.add_mutually_exclusive_group(required=True)
        target.add_argument('--wordbook', help='Id of an existing wordbook')
        target.add_argument('--name', help='Name of a wordbook to create')
        parser.add_argument('--level', default='', help='Level of the new wordbook')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Parse the file and report rows without creating anything',
        )

    def handle(self, *args, **options):
        try:
            with open(options['path'], encoding='utf-8-sig') as f:
                rows = csv_io.parse_csv(f.read())
        except (OSError, UnicodeDecodeError) as e:
            raise CommandError(f"Cannot read {options['path']}: {e}")

        if not rows:
            raise CommandError('No rows with a headword found')

        if options['dry_run']:
            for row in rows:
                self.stdout.write(f"[DRY RUN] {row.headword}")
            self.stdout.write(f"[DRY RUN] Would import {len(rows)} card(s)")
            return

        if options['wordbook']:
            try:
                wordbook = storage.get_wordbook(options['wordbook'])
            except Wordbook.DoesNotExist:
                raise CommandError(f"Wordbook {options['wordbook']} does not exist")
        else:
            wordbook = storage.create_wordbook(options['name'], level=options['level'])

        result = csv_io.import_csv_rows(wordbook, rows)
        for error in result.errors:
            self.stderr.write(error)
        self.stdout.write(
            self.style.SUCCESS(
                f"Imported {result.created} card(s) into \"{wordbook.name}\" ({wordbook.pk}), "
                f"{result.failed} failed"
            )
        )
