"""Settings views."""

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .. import storage
from ..backup import settings_to_dict
from ..forms import UserSettingsForm, bound_data
from .helpers import BadRequest, json_body, error_response, form_error_response


def _settings_payload(settings):
    data = settings_to_dict(settings)
    # Never echo the key itself
    data['gemini_api_key'] = bool(settings.gemini_api_key)
    return data


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def settings_view(request):
    """GET returns the settings; POST updates any subset of them."""
    settings = storage.get_user_settings()

    if request.method == 'POST':
        try:
            data = json_body(request)
        except BadRequest as e:
            return error_response(str(e))
        form = UserSettingsForm(data=bound_data(settings, UserSettingsForm.Meta.fields, data), instance=settings)
        if not form.is_valid():
            return form_error_response(form)
        settings = form.save()

    return JsonResponse(_settings_payload(settings))
