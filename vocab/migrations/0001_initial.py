import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import vocab.models
import vocab.srs


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Wordbook',
            fields=[
                ('id', models.CharField(default=vocab.models.new_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('level', models.CharField(blank=True, max_length=100)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'ordering': ['created_at', 'id'],
            },
        ),
        migrations.CreateModel(
            name='UserSettings',
            fields=[
                ('id', models.CharField(default='default', editable=False, max_length=32, primary_key=True, serialize=False)),
                ('daily_goal', models.PositiveIntegerField(default=20)),
                ('theme', models.CharField(choices=[('light', 'Light'), ('dark', 'Dark'), ('system', 'System')], default='system', max_length=10)),
                ('tts_enabled', models.BooleanField(default=True)),
                ('tts_voice', models.CharField(blank=True, max_length=100)),
                ('tts_auto_play', models.BooleanField(default=False)),
                ('display_direction', models.CharField(blank=True, max_length=30)),
                ('review_mode', models.CharField(choices=[('traditional', 'Traditional'), ('srs', 'Spaced repetition')], default='srs', max_length=20)),
                ('error_filter_mode', models.CharField(choices=[('top-n', 'Top N error rates'), ('min-errors', 'Minimum wrong answers'), ('min-error-rate', 'Minimum error rate')], default='top-n', max_length=20)),
                ('error_top_n', models.PositiveIntegerField(default=20)),
                ('error_min_errors', models.PositiveIntegerField(default=3)),
                ('error_min_error_rate', models.PositiveIntegerField(default=50)),
                ('gemini_api_key', models.CharField(blank=True, max_length=200)),
            ],
            options={
                'verbose_name_plural': 'User settings',
            },
        ),
        migrations.CreateModel(
            name='DailyReviewRecord',
            fields=[
                ('id', models.CharField(default=vocab.models.new_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('date', models.DateField(unique=True)),
                ('review_count', models.PositiveIntegerField(default=0)),
                ('correct_count', models.PositiveIntegerField(default=0)),
                ('wrong_count', models.PositiveIntegerField(default=0)),
                ('card_ids', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'ordering': ['-date'],
            },
        ),
        migrations.CreateModel(
            name='Card',
            fields=[
                ('id', models.CharField(default=vocab.models.new_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('headword', models.CharField(max_length=200)),
                ('phonetic', models.CharField(blank=True, max_length=200)),
                ('meanings', models.JSONField(blank=True, default=list)),
                ('notes', models.TextField(blank=True)),
                ('star', models.BooleanField(default=False)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('wordbook', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='cards', to='vocab.wordbook')),
            ],
            options={
                'ordering': ['created_at', 'id'],
            },
        ),
        migrations.CreateModel(
            name='CardStats',
            fields=[
                ('id', models.CharField(default=vocab.models.new_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('shown_count', models.PositiveIntegerField(default=0)),
                ('right_count', models.PositiveIntegerField(default=0)),
                ('wrong_count', models.PositiveIntegerField(default=0)),
                ('last_reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('card', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='stats', to='vocab.card')),
            ],
            options={
                'verbose_name_plural': 'Card stats',
            },
        ),
        migrations.CreateModel(
            name='CardSRS',
            fields=[
                ('id', models.CharField(default=vocab.models.new_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('ease', models.FloatField(default=2.5)),
                ('interval_days', models.PositiveIntegerField(default=1)),
                ('repetitions', models.PositiveIntegerField(default=0)),
                ('due_at', models.DateTimeField(db_index=True, default=vocab.srs.now_ms)),
                ('card', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='srs', to='vocab.card')),
            ],
            options={
                'verbose_name': 'Card SRS',
                'verbose_name_plural': 'Card SRS',
            },
        ),
    ]
