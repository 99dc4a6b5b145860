"""
Management command to write a full backup.

    python manage.py export_data backup.json
    python manage.py export_data            # prints to stdout
"""

import json

from django.core.management.base import BaseCommand

from vocab.backup import export_all_data


class Command(BaseCommand):
    help = 'Export every wordbook, card, stats and schedule as a JSON backup'

    def add_arguments(self, parser):
        parser.add_argument('path', nargs='?', help='File to write; stdout when omitted')

    def handle(self, *args, **options):
        document = export_all_data()
        content = json.dumps(document, indent=2, ensure_ascii=False)

        if not options['path']:
            self.stdout.write(content)
            return

        with open(options['path'], 'w', encoding='utf-8') as f:
            f.write(content)
        self.stdout.write(
            self.style.SUCCESS(
                f"Exported {len(document['wordbooks'])} wordbook(s) and "
                f"{len(document['cards'])} card(s) to {options['path']}"
            )
        )
