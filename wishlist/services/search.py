from __future__ import annotations

from rapidfuzz import fuzz


def _safe(value: str | None) -> str:
    return (value or "").strip()


def score_item(item, query: str) -> tuple[float, list[str]]:
    q = query.strip().lower()
    name_l = _safe(item.name).lower()
    links_l = " ".join(_safe(link.name) for link in item.links).lower()
    category_l = _safe(item.category.name if item.category else "").lower()

    score = 0.0
    reasons: list[str] = []

    if q == name_l:
        score += 150
        reasons.append("exact_name")
    elif name_l.startswith(q):
        score += 120
        reasons.append("name_prefix")
    elif q in name_l:
        score += 100
        reasons.append("name_contains")

    if category_l and q in category_l:
        score += 60
        reasons.append("category_match")

    if links_l and q in links_l:
        score += 40
        reasons.append("link_match")

    fuzzy_name = fuzz.partial_ratio(q, name_l) if name_l else 0
    if fuzzy_name >= 72:
        score += fuzzy_name * 0.30
        reasons.append("name_fuzzy")

    if category_l:
        fuzzy_category = fuzz.partial_ratio(q, category_l)
        if fuzzy_category >= 80:
            score += fuzzy_category * 0.20
            reasons.append("category_fuzzy")

    return score, reasons


def search_items(items, query: str, limit: int = 50):
    if not query or not query.strip():
        return []

    ranked = []
    for item in items:
        score, reasons = score_item(item, query)
        if reasons and score > 0:
            ranked.append({"item": item, "score": round(score, 2), "reasons": reasons})

    ranked.sort(key=lambda row: row["score"], reverse=True)
    return ranked[:limit]
