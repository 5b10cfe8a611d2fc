"""
Pagination Utilities

Offset pagination helpers shared by the permission and user stores.
"""

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def page_window(page: int | None, page_size: int | None) -> tuple[int, int]:
    """
    Normalise 1-based page parameters into a (limit, offset) pair.

    Non-positive or missing values fall back to page 1 and the default page
    size; page sizes are capped at MAX_PAGE_SIZE.
    """
    page = page if page and page > 0 else 1
    page_size = page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)
    return page_size, (page - 1) * page_size
