"""Full backup export and import views."""

import json

from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .. import backup
from .helpers import error_response


@require_GET
def export_data(request):
    """Download the whole store as a JSON file."""
    document = backup.export_all_data()
    response = HttpResponse(
        json.dumps(document, indent=2, ensure_ascii=False),
        content_type='application/json'
    )
    timestamp = document['exported_at'].replace(':', '-').replace('.', '-')
    response['Content-Disposition'] = f'attachment; filename="vocabulary-flow-backup-{timestamp}.json"'
    return response


@csrf_exempt
@require_POST
def import_data(request):
    """Replace the store with an uploaded backup (raw JSON body or a 'file' upload)."""
    uploaded_file = request.FILES.get('file')
    try:
        content = (uploaded_file.read() if uploaded_file else request.body).decode('utf-8')
        document = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return error_response(f'Invalid JSON file: {e}')

    try:
        counts = backup.import_all_data(document)
    except backup.ImportFormatError as e:
        return error_response(str(e))
    return JsonResponse({'success': True, 'imported': counts})
