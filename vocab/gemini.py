"""
Word detail generation through the Gemini REST API.

One request asks the model for a JSON array describing a list of words.
Batch helpers build on it: each card or batch of words is attempted on its
own, so one bad answer costs only that card or batch.
"""

import json
import logging
import re
from dataclasses import dataclass, field

import requests
from django.conf import settings
from django.db import DatabaseError

from . import storage

logger = logging.getLogger(__name__)

API_URL = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'
DEFAULT_MODEL = 'gemini-2.5-flash'
DEFAULT_TIMEOUT = 60
DEFAULT_LIMITS = {'synonyms': 6, 'antonyms': 6, 'examples': 3}
DEFAULT_CONSTRAINTS = 'natural usage, exam-appropriate, no rare proper nouns'
WORDBOOK_BATCH_SIZE = 10

_FENCE = re.compile(r'```(?:json)?\s*')

PROMPT = """You are a vocabulary learning assistant. Generate detailed information for the following words at {level} level.

Words: {words}

Constraints: {constraints}

For each word, provide:
1. Part of speech
2. Clear English definition
3. Traditional Chinese definition
4. Up to {examples} example sentences
5. Up to {synonyms} synonyms
6. Up to {antonyms} antonyms (if applicable)
7. IPA pronunciation
8. Register/formality level (e.g., formal, informal, academic)
9. Any important usage notes

Return ONLY a valid JSON array with this exact structure:
[
  {{
    "headword": "rescind",
    "part_of_speech": "verb",
    "definition_en": "to cancel or repeal officially",
    "definition_zh": "撤銷；廢除",
    "synonyms": ["revoke", "repeal", "annul"],
    "antonyms": ["enact", "authorize"],
    "examples": ["The board voted to rescind the policy."],
    "ipa": "/rɪˈsɪnd/",
    "register": "formal",
    "notes": "Often used in legal or official contexts"
  }}
]

Important:
- Return ONLY the JSON array, no additional text or markdown
- Include all {count} words in the response
- Keep definitions clear and appropriate for {level} learners
- If a word has no common antonyms, use an empty array"""


class WordDetailError(Exception):
    """The Gemini request failed or its answer could not be used."""


def _string_list(value, name):
    """A list of strings from an answer field; a bare string becomes a one-item list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise WordDetailError(f"\"{name}\" must be a list of strings, got {value!r}")


def _text(value, name):
    if value is None:
        return ''
    if isinstance(value, (dict, list)):
        raise WordDetailError(f"\"{name}\" must be text, got {value!r}")
    return str(value)


@dataclass
class WordDetail:
    headword: str
    part_of_speech: str = ''
    definition_en: str = ''
    definition_zh: str = ''
    synonyms: list = field(default_factory=list)
    antonyms: list = field(default_factory=list)
    examples: list = field(default_factory=list)
    ipa: str = ''
    register: str = ''
    notes: str = ''

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not data.get('headword'):
            raise WordDetailError(f"Word detail without a headword: {data!r}")
        return cls(
            headword=_text(data['headword'], 'headword'),
            part_of_speech=_text(data.get('part_of_speech'), 'part_of_speech'),
            definition_en=_text(data.get('definition_en'), 'definition_en'),
            definition_zh=_text(data.get('definition_zh'), 'definition_zh'),
            synonyms=_string_list(data.get('synonyms'), 'synonyms'),
            antonyms=_string_list(data.get('antonyms'), 'antonyms'),
            examples=_string_list(data.get('examples'), 'examples'),
            ipa=_text(data.get('ipa'), 'ipa'),
            register=_text(data.get('register'), 'register'),
            notes=_text(data.get('notes'), 'notes'),
        )

    def meaning(self):
        return {
            'part_of_speech': self.part_of_speech,
            'meaning_zh': self.definition_zh,
            'meaning_en': self.definition_en,
            'synonyms': self.synonyms,
            'antonyms': self.antonyms,
            'examples': self.examples,
        }

    def card_fields(self):
        return {
            'phonetic': self.ipa,
            'meanings': [self.meaning()],
            'notes': self.notes,
        }


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: int = 0
    errors: list = field(default_factory=list)


def resolve_api_key():
    """The key saved in user settings, falling back to GEMINI_API_KEY."""
    key = storage.get_user_settings().gemini_api_key or getattr(settings, 'GEMINI_API_KEY', '')
    if not key:
        raise WordDetailError('Gemini API key is not configured')
    return key


def strip_fences(text):
    return _FENCE.sub('', text).strip()


def generate_word_details(words, *, api_key, level='TOEFL', limits=None, constraints=DEFAULT_CONSTRAINTS):
    """
    Ask Gemini for details of each word.

    Returns:
        List of WordDetail, in the order the model answered.

    Raises:
        WordDetailError: missing key, HTTP failure, empty answer or invalid JSON.
    """
    if not api_key:
        raise WordDetailError('Gemini API key is required')
    words = [w for w in words if w]
    if not words:
        return []

    limits = {**DEFAULT_LIMITS, **(limits or {})}
    prompt = PROMPT.format(
        level=level,
        words=', '.join(words),
        constraints=constraints,
        count=len(words),
        **limits,
    )
    payload = {
        'contents': [{'parts': [{'text': prompt}]}],
        'generationConfig': {
            'temperature': 0.7,
            'topK': 40,
            'topP': 0.95,
            'maxOutputTokens': 4096,
        },
    }
    model = getattr(settings, 'GEMINI_MODEL', DEFAULT_MODEL)
    timeout = getattr(settings, 'GEMINI_TIMEOUT', DEFAULT_TIMEOUT)

    try:
        response = requests.post(
            API_URL.format(model=model),
            params={'key': api_key},
            json=payload,
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise WordDetailError(f"Gemini request failed: {e}") from e

    if not response.ok:
        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get('error') if isinstance(body, dict) else None
        message = error.get('message') if isinstance(error, dict) else None
        raise WordDetailError(message or f"Gemini API error: {response.status_code}")

    try:
        text = response.json()['candidates'][0]['content']['parts'][0]['text']
    except (ValueError, KeyError, IndexError, TypeError):
        text = None
    if not text:
        raise WordDetailError('No response from Gemini API')

    try:
        items = json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        logger.warning(f"Unparsable Gemini answer: {text[:200]!r}")
        raise WordDetailError('Failed to parse word details from Gemini response') from e
    if not isinstance(items, list):
        raise WordDetailError('Gemini response is not a JSON array')

    return [WordDetail.from_dict(item) for item in items]


def regenerate_cards(cards, *, api_key, level='TOEFL', limits=None):
    """
    Replace each card's phonetic, meanings and notes with fresh details.

    Cards are requested one at a time; an update already saved stays saved
    when a later card fails.
    """
    result = BatchResult()
    for card in cards:
        try:
            details = generate_word_details([card.headword], api_key=api_key, level=level, limits=limits)
            if not details:
                raise WordDetailError(f"No details returned for {card.headword!r}")
            storage.update_card(card.pk, **details[0].card_fields())
        except (WordDetailError, DatabaseError) as e:
            result.failed += 1
            result.errors.append(f"{card.headword}: {e}")
            logger.error(f"Failed to regenerate card {card.pk} ({card.headword!r})", exc_info=True)
            continue
        result.succeeded += 1

    logger.info(f"Regenerated {result.succeeded} cards, {result.failed} failed")
    return result


def generate_wordbook(name, words, *, api_key, level='', description='', limits=None,
                      batch_size=WORDBOOK_BATCH_SIZE):
    """
    Create a wordbook and fill it with generated cards, batch by batch.

    Returns (wordbook, BatchResult); ``succeeded`` counts cards created and
    ``failed`` counts words in batches that failed.
    """
    wordbook = storage.create_wordbook(name, description=description, level=level)
    result = BatchResult()
    words = list(words)

    for start in range(0, len(words), batch_size):
        batch = words[start:start + batch_size]
        try:
            details = generate_word_details(batch, api_key=api_key, level=level or 'TOEFL', limits=limits)
        except WordDetailError as e:
            result.failed += len(batch)
            result.errors.append(f"Batch starting at {start}: {e}")
            logger.error(f"Failed to generate batch starting at {start} for {wordbook.pk}", exc_info=True)
            continue
        for detail in details:
            try:
                storage.create_card(wordbook.pk, detail.headword, **detail.card_fields())
            except DatabaseError as e:
                result.failed += 1
                result.errors.append(f"{detail.headword}: {e}")
                logger.error(f"Failed to save generated card {detail.headword!r} in {wordbook.pk}", exc_info=True)
                continue
            result.succeeded += 1

    logger.info(f"Generated wordbook {wordbook.pk} ({name!r}): {result.succeeded} cards, {result.failed} failed")
    return wordbook, result
