"""
Management command to refresh card details with Gemini.

    python manage.py regenerate_cards --wordbook <id>
    python manage.py regenerate_cards --wordbook <id> --only-empty

Uses the API key from user settings, falling back to GEMINI_API_KEY.
"""

from django.core.management.base import BaseCommand, CommandError

from vocab import gemini, storage
from vocab.models import Wordbook


class Command(BaseCommand):
    help = "Regenerate phonetics, meanings and notes for a wordbook's cards"

    def add_arguments(self, parser):
        parser.add_argument('--wordbook', required=True, help='Id of the wordbook')
        parser.add_argument(
            '--only-empty',
            action='store_true',
            help='Only cards that have no meanings yet',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the cards that would be regenerated',
        )

    def handle(self, *args, **options):
        try:
            wordbook = storage.get_wordbook(options['wordbook'])
        except Wordbook.DoesNotExist:
            raise CommandError(f"Wordbook {options['wordbook']} does not exist")

        cards = storage.get_cards_by_wordbook(wordbook.pk)
        if options['only_empty']:
            cards = [card for card in cards if not card.meanings]

        if options['dry_run']:
            for card in cards:
                self.stdout.write(f"[DRY RUN] Would regenerate {card.headword}")
            return

        try:
            api_key = gemini.resolve_api_key()
        except gemini.WordDetailError as e:
            raise CommandError(str(e))

        result = gemini.regenerate_cards(cards, api_key=api_key, level=wordbook.level or 'TOEFL')
        for error in result.errors:
            self.stderr.write(error)
        self.stdout.write(
            self.style.SUCCESS(f"Regenerated {result.succeeded} card(s), {result.failed} failed")
        )
