"""Page arithmetic shared by the listing search and booking lists"""

import math

from ..errors import ValidationError

MAX_PAGE_SIZE = 100


def validate_page(page: int, page_size: int) -> tuple[int, int]:
    if page < 1:
        raise ValidationError("Page must be 1 or greater", field="page")
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError(
            f"Page size must be between 1 and {MAX_PAGE_SIZE}", field="page_size"
        )
    return page, page_size


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def build_pagination(page: int, page_size: int, total: int) -> dict:
    total_pages = math.ceil(total / page_size) if total else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": page_size,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }
