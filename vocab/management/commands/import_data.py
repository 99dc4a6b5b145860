"""
Management command to restore a full backup.

    python manage.py import_data backup.json

Replaces all wordbooks, cards and review history with the backup contents.
"""

import json

from django.core.management.base import BaseCommand, CommandError

from vocab.backup import import_all_data, ImportFormatError


class Command(BaseCommand):
    help = 'Replace all data with the contents of a JSON backup'

    def add_arguments(self, parser):
        parser.add_argument('path', help='Backup file produced by export_data')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report what the backup contains',
        )

    def handle(self, *args, **options):
        try:
            with open(options['path'], encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CommandError(f"Cannot read {options['path']}: {e}")

        if options['dry_run']:
            if not isinstance(document, dict):
                raise CommandError('Backup must be a JSON object')
            self.stdout.write(
                f"[DRY RUN] Would import {len(document.get('wordbooks') or [])} wordbook(s) "
                f"and {len(document.get('cards') or [])} card(s)"
            )
            return

        try:
            counts = import_all_data(document)
        except ImportFormatError as e:
            raise CommandError(str(e))

        self.stdout.write(
            self.style.SUCCESS(
                f"Imported {counts['wordbooks']} wordbook(s) and {counts['cards']} card(s)"
            )
        )
