from django.http import JsonResponse


class RetiredUploadMiddleware:
    """Return 410 for the retired file upload/delete endpoints.

    Report files live in external storage; clients send the resulting
    ``fileUrl`` with the report metadata instead.
    """
    LEGACY_PREFIXES = ('/api/upload', '/api/delete-file', '/api/cloudinary-delete')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or ''
        if any(path.startswith(p) for p in self.LEGACY_PREFIXES):
            return JsonResponse(
                {'ok': False, 'error': {'code': 'gone', 'message': 'File uploads are no longer handled here. Send fileUrl with /api/reports instead.'}},
                status=410
            )
        return self.get_response(request)
