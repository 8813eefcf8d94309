"""
# Query Filter Builder

Builds MongoDB filter and sort documents for the club and event listing
endpoints. Search text is regex-escaped before use so callers cannot inject
patterns, and sort keys are whitelisted.

```python
query = build_club_filter(search="chess", category="board-games", status=ClubStatus.APPROVED)
# {"status": "approved", "category": "board-games",
#  "$or": [{"clubName": {"$regex": "chess", "$options": "i"}},
#          {"description": {"$regex": "chess", "$options": "i"}}]}
```
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from clubsphere.exceptions import InvalidInputError

CLUB_SORTS: Dict[str, List[Tuple[str, int]]] = {
    "newest": [("createdAt", DESCENDING)],
    "oldest": [("createdAt", ASCENDING)],
    "fee_asc": [("membershipFee", ASCENDING)],
    "fee_desc": [("membershipFee", DESCENDING)],
}

EVENT_SORTS: Dict[str, List[Tuple[str, int]]] = {
    "newest": [("createdAt", DESCENDING)],
    "oldest": [("createdAt", ASCENDING)],
    "date_asc": [("eventDate", ASCENDING)],
    "date_desc": [("eventDate", DESCENDING)],
    "fee_asc": [("eventFee", ASCENDING)],
    "fee_desc": [("eventFee", DESCENDING)],
}


def _search_clause(search: Optional[str], fields: List[str]) -> Optional[Dict[str, Any]]:
    if not search or not search.strip():
        return None
    pattern = re.escape(search.strip())
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}


def build_club_filter(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    owner_email: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the `clubs` collection filter for a listing request."""
    query: Dict[str, Any] = {}
    if status:
        query["status"] = str(getattr(status, "value", status))
    if category:
        query["category"] = category
    if owner_email:
        query["ownerEmail"] = owner_email
    clause = _search_clause(search, ["clubName", "description"])
    if clause:
        query.update(clause)
    return query


def build_event_filter(
    search: Optional[str] = None,
    club_id: Optional[str] = None,
    status: Optional[str] = None,
    is_paid: Optional[bool] = None,
) -> Dict[str, Any]:
    """Build the `events` collection filter for a listing request."""
    query: Dict[str, Any] = {}
    if status:
        query["status"] = str(getattr(status, "value", status))
    if club_id:
        query["clubId"] = club_id
    if is_paid is not None:
        query["isPaid"] = is_paid
    clause = _search_clause(search, ["title", "description"])
    if clause:
        query.update(clause)
    return query


def build_sort(sort: Optional[str], allowed: Dict[str, List[Tuple[str, int]]]) -> List[Tuple[str, int]]:
    """
    Resolve a sort key to a PyMongo sort list.

    Defaults to `newest` when no key is given.

    Raises:
        InvalidInputError: If the key is not in `allowed`.
    """
    key = sort or "newest"
    if key not in allowed:
        raise InvalidInputError(f"Unsupported sort '{key}'. Allowed: {', '.join(sorted(allowed))}")
    return allowed[key]
