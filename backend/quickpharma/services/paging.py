"""Paging helpers shared by list endpoints."""
from typing import Any, Dict, List, Tuple


def normalize_page(page_number: int, page_size: int, default_size: int = 10, max_size: int = 100) -> Tuple[int, int]:
    if not page_number or page_number < 1:
        page_number = 1
    if not page_size or page_size < 1:
        page_size = default_size
    return page_number, min(page_size, max_size)


def paged(items: List[Any], total: int, page_number: int, page_size: int) -> Dict[str, Any]:
    return {
        "items": items,
        "total_count": total,
        "page_number": page_number,
        "page_size": page_size,
    }


def apply_page(query, page_number: int, page_size: int):
    return query.offset((page_number - 1) * page_size).limit(page_size)
