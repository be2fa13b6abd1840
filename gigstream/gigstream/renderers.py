from django.utils import timezone
from rest_framework.renderers import JSONRenderer


class EnvelopeJSONRenderer(JSONRenderer):
    """Wrap successful payloads as ``{success: true, data, timestamp}``."""

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = (renderer_context or {}).get('response')
        if response is not None and response.status_code == 204:
            return b''

        already_wrapped = isinstance(data, dict) and 'success' in data and 'timestamp' in data
        if not already_wrapped:
            data = {
                'success': response is None or response.status_code < 400,
                'data': data,
                'timestamp': timezone.now().isoformat(),
            }
        return super().render(data, accepted_media_type, renderer_context)
