from django import forms
from django.forms.models import model_to_dict

from .models import Wordbook, Card, UserSettings
from . import sessions

MEANING_KEYS = ('part_of_speech', 'meaning_zh', 'meaning_en', 'synonyms', 'antonyms', 'examples')
MEANING_LIST_KEYS = ('synonyms', 'antonyms', 'examples')


def bound_data(instance, fields, payload):
    """Current field values of instance overlaid with the request payload."""
    data = model_to_dict(instance, fields=fields) if instance is not None else {}
    data.update({key: value for key, value in payload.items() if key in fields})
    return data


def _string_list(value, label):
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise forms.ValidationError(f'{label} must be a list of strings.')
    return value


class WordbookForm(forms.ModelForm):
    """Form for creating and editing wordbooks."""

    class Meta:
        model = Wordbook
        fields = ['name', 'description', 'level']


class CardForm(forms.ModelForm):
    """Form for creating and editing cards."""

    class Meta:
        model = Card
        fields = ['headword', 'phonetic', 'meanings', 'notes', 'star', 'tags']

    def clean_headword(self):
        headword = self.cleaned_data['headword'].strip()
        if not headword:
            raise forms.ValidationError('Headword cannot be blank.')
        return headword

    def clean_meanings(self):
        meanings = self.cleaned_data.get('meanings') or []
        if not isinstance(meanings, list):
            raise forms.ValidationError('Meanings must be a list.')
        cleaned = []
        for meaning in meanings:
            if not isinstance(meaning, dict):
                raise forms.ValidationError('Each meaning must be an object.')
            unknown = set(meaning) - set(MEANING_KEYS)
            if unknown:
                raise forms.ValidationError(f"Unknown meaning fields: {', '.join(sorted(unknown))}")
            entry = {key: meaning.get(key) or '' for key in MEANING_KEYS if key not in MEANING_LIST_KEYS}
            for key in MEANING_LIST_KEYS:
                entry[key] = _string_list(meaning.get(key) or [], key.capitalize())
            cleaned.append(entry)
        return cleaned

    def clean_tags(self):
        return _string_list(self.cleaned_data.get('tags') or [], 'Tags')


class UserSettingsForm(forms.ModelForm):
    """Form for the settings singleton."""

    class Meta:
        model = UserSettings
        fields = [
            'daily_goal', 'theme',
            'tts_enabled', 'tts_voice', 'tts_auto_play',
            'display_direction', 'review_mode',
            'error_filter_mode', 'error_top_n', 'error_min_errors', 'error_min_error_rate',
            'gemini_api_key',
        ]

    def _in_range(self, name, filter_mode):
        value = self.cleaned_data[name]
        low, high = sessions.ERROR_FILTER_RANGES[filter_mode]
        if not low <= value <= high:
            raise forms.ValidationError(f'Must be between {low} and {high}.')
        return value

    def clean_daily_goal(self):
        goal = self.cleaned_data['daily_goal']
        if goal < 1:
            raise forms.ValidationError('Daily goal must be at least 1.')
        return goal

    def clean_error_top_n(self):
        return self._in_range('error_top_n', sessions.FILTER_TOP_N)

    def clean_error_min_errors(self):
        return self._in_range('error_min_errors', sessions.FILTER_MIN_ERRORS)

    def clean_error_min_error_rate(self):
        return self._in_range('error_min_error_rate', sessions.FILTER_MIN_ERROR_RATE)


class ReviewRequestForm(forms.Form):
    """Query parameters of a review session request."""
    FILTER_PARAMS = {
        sessions.FILTER_TOP_N: 'topN',
        sessions.FILTER_MIN_ERRORS: 'minErrors',
        sessions.FILTER_MIN_ERROR_RATE: 'minErrorRate',
    }

    mode = forms.ChoiceField(choices=[(m, m) for m in sessions.MODES])
    filter = forms.ChoiceField(
        choices=[(f, f) for f in sessions.ERROR_FILTER_RANGES],
        required=False,
    )
    topN = forms.IntegerField(min_value=1, max_value=100, required=False)
    minErrors = forms.IntegerField(min_value=1, max_value=50, required=False)
    minErrorRate = forms.IntegerField(min_value=1, max_value=100, required=False)
    wordbook = forms.CharField(max_length=64, required=False)
    order = forms.ChoiceField(choices=[(o, o) for o in sessions.ORDERS], required=False)

    def clean(self):
        cleaned_data = super().clean()
        mode = cleaned_data.get('mode')
        if mode in sessions.WORDBOOK_MODES and not cleaned_data.get('wordbook'):
            self.add_error('wordbook', f'Mode "{mode}" requires a wordbook.')
        return cleaned_data

    def error_filter(self, settings):
        """The frequent-errors filter requested, or the one saved in settings."""
        filter_mode = self.cleaned_data.get('filter') or None
        if filter_mode is None:
            return sessions.ErrorFilter.from_settings(settings)
        value = self.cleaned_data.get(self.FILTER_PARAMS[filter_mode])
        if value is None:
            return sessions.ErrorFilter.from_settings(settings, filter_mode)
        return sessions.ErrorFilter(filter_mode, value)
