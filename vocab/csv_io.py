"""CSV import and export of a wordbook's cards."""

import csv
import io
import logging
from dataclasses import dataclass, field

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from .models import Card

logger = logging.getLogger(__name__)

LIST_SEPARATOR = '|'
BOM = '﻿'

# Accepted header names per field, first match wins
FIELD_ALIASES = (
    ('headword', ('headword', 'word')),
    ('phonetic', ('phonetic', 'pronunciation', 'ipa')),
    ('part_of_speech', ('part_of_speech', 'pos')),
    ('meaning_zh', ('meaning_zh', 'chinese', 'translation')),
    ('meaning_en', ('meaning_en', 'english', 'definition')),
    ('notes', ('notes',)),
    ('tags', ('tags',)),
    ('synonyms', ('synonyms',)),
    ('antonyms', ('antonyms',)),
    ('examples', ('examples',)),
)

EXPORT_HEADER = [
    'headword',
    'meaning_zh',
    'meaning_en',
    'part_of_speech',
    'ipa',
    'notes',
    'tags',
    'synonyms',
    'antonyms',
    'examples',
]


@dataclass
class CSVRow:
    headword: str
    phonetic: str = ''
    part_of_speech: str = ''
    meaning_zh: str = ''
    meaning_en: str = ''
    notes: str = ''
    tags: list = field(default_factory=list)
    synonyms: list = field(default_factory=list)
    antonyms: list = field(default_factory=list)
    examples: list = field(default_factory=list)

    def meaning(self):
        """The row's single meaning entry, or None when it carries no meaning data."""
        if not (self.part_of_speech or self.meaning_zh or self.meaning_en
                or self.synonyms or self.antonyms or self.examples):
            return None
        return {
            'part_of_speech': self.part_of_speech,
            'meaning_zh': self.meaning_zh,
            'meaning_en': self.meaning_en,
            'synonyms': self.synonyms,
            'antonyms': self.antonyms,
            'examples': self.examples,
        }

    def card_fields(self):
        meaning = self.meaning()
        return {
            'headword': self.headword,
            'phonetic': self.phonetic,
            'notes': self.notes,
            'tags': self.tags,
            'meanings': [meaning] if meaning else [],
        }


@dataclass
class ImportResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list = field(default_factory=list)


def split_list(value):
    return [item.strip() for item in value.split(LIST_SEPARATOR) if item.strip()]


def resolve_columns(header):
    """Map each field to its column index in this header, or leave it out if absent."""
    names = [name.strip().lstrip(BOM).lower() for name in header]
    columns = {}
    for field_name, aliases in FIELD_ALIASES:
        for alias in aliases:
            if alias in names:
                columns[field_name] = names.index(alias)
                break
    return columns


def parse_csv(text):
    """
    Parse CSV text into rows.

    The first line is the header. Rows without a headword are dropped; a
    header without any headword column yields no rows at all.
    """
    reader = csv.reader(io.StringIO(text.lstrip(BOM)))
    header = next(reader, None)
    if header is None:
        return []
    columns = resolve_columns(header)
    if 'headword' not in columns:
        return []

    rows = []
    for values in reader:
        def value(name):
            index = columns.get(name)
            if index is None or index >= len(values):
                return ''
            return values[index].strip()

        headword = value('headword')
        if not headword:
            continue
        rows.append(CSVRow(
            headword=headword,
            phonetic=value('phonetic'),
            part_of_speech=value('part_of_speech'),
            meaning_zh=value('meaning_zh'),
            meaning_en=value('meaning_en'),
            notes=value('notes'),
            tags=split_list(value('tags')),
            synonyms=split_list(value('synonyms')),
            antonyms=split_list(value('antonyms')),
            examples=split_list(value('examples')),
        ))
    return rows


def cards_to_csv(cards):
    """Serialize cards with a UTF-8 BOM; list fields are pipe-delimited."""
    cards = list(cards)
    if not cards:
        return ''

    out = io.StringIO()
    writer = csv.writer(out, lineterminator='\n')
    writer.writerow(EXPORT_HEADER)
    for card in cards:
        meaning = card.meanings[0] if card.meanings else {}
        writer.writerow([
            card.headword,
            meaning.get('meaning_zh') or '',
            meaning.get('meaning_en') or '',
            meaning.get('part_of_speech') or '',
            card.phonetic,
            card.notes,
            LIST_SEPARATOR.join(card.tags),
            LIST_SEPARATOR.join(meaning.get('synonyms') or []),
            LIST_SEPARATOR.join(meaning.get('antonyms') or []),
            LIST_SEPARATOR.join(meaning.get('examples') or []),
        ])
    return BOM + out.getvalue()


def import_csv_rows(wordbook, rows):
    """
    Create one card per row in the wordbook.

    Each row is saved on its own; a row that fails is counted and logged
    and the rest still go in.
    """
    result = ImportResult()
    for number, row in enumerate(rows, start=1):
        if not row.headword:
            result.skipped += 1
            continue
        try:
            with transaction.atomic():
                card = Card(wordbook=wordbook, **row.card_fields())
                card.full_clean()
                card.save()
        except (ValidationError, DatabaseError) as e:
            result.failed += 1
            result.errors.append(f"Row {number} ({row.headword}): {e}")
            logger.warning(f"CSV row {number} for wordbook {wordbook.pk} failed: {e}")
            continue
        result.created += 1

    logger.info(
        f"CSV import into {wordbook.pk}: {result.created} created, "
        f"{result.skipped} skipped, {result.failed} failed"
    )
    return result
