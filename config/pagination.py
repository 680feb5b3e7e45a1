from rest_framework.pagination import PageNumberPagination


class FlexiblePageNumberPagination(PageNumberPagination):
    """
    Pagination class that allows clients to specify page_size via query parameter.
    - Default: 20 items per page
    - Max: 500 items per page
    - Query param: ?page_size=50

    Works on querysets and on the plain lists produced by the follow-up
    aggregate view (statuses are computed in Python, not in SQL).
    """
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 500
