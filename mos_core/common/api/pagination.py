# mos_core/common/api/pagination.py
from __future__ import annotations

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 200


def paginate(request, queryset, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    Every list endpoint answers with the same shape:
      { count, next, previous, results }
    even when the paginator is switched off (page_size=None).
    """
    p = paginator or DefaultPagination()
    page = p.paginate_queryset(queryset, request)
    if page is None:
        rows = serializer_class(queryset, many=True).data
        return Response({"count": len(rows), "next": None, "previous": None, "results": rows})
    return p.get_paginated_response(serializer_class(page, many=True).data)
