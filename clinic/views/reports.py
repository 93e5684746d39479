"""Medical report metadata. Files live elsewhere; a report carries its ``fileUrl``."""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.serializers.reports import (
    ReportListQuerySerializer,
    ReportSerializer,
    ReportUpdateSerializer,
    ReviewSerializer,
)
from clinic.services.reports import (
    AVAILABLE_TAGS,
    create_report,
    delete_report,
    filter_reports,
    format_report,
    get_report,
    report_summary,
    review_report,
    update_report,
)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def reports(request):
    if request.method == 'POST':
        s = ReportSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        r = create_report(request.user, **s.validated_data)
        return Response({'ok': True, 'data': format_report(r)}, status=status.HTTP_201_CREATED)

    q = ReportListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    rows = filter_reports(request.user, **q.validated_data)
    return Response({'ok': True, 'data': [format_report(r) for r in rows], 'tags': AVAILABLE_TAGS})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def reports_summary(request):
    return Response({'ok': True, 'data': report_summary(filter_reports(request.user))})


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def report_detail(request, pk: int):
    r = get_report(request.user, pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_report(r)})
    if request.method == 'DELETE':
        delete_report(request.user, r)
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = ReportUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    r = update_report(request.user, r, dict(s.validated_data))
    return Response({'ok': True, 'data': format_report(r)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def report_review(request, pk: int):
    r = get_report(request.user, pk)
    s = ReviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    r = review_report(request.user, r, notes=s.validated_data['notes'], status=s.validated_data['status'])
    return Response({'ok': True, 'data': format_report(r)})
