from typing import Optional


def normalize_district(district: Optional[str]) -> str:
    """Forme de comparaison d'un district : sans espaces superflus, insensible à la casse."""
    if not district:
        return ""
    return " ".join(district.split()).casefold()


def same_district(a: Optional[str], b: Optional[str]) -> bool:
    left, right = normalize_district(a), normalize_district(b)
    return bool(left) and left == right


def without_id(doc: Optional[dict]) -> Optional[dict]:
    """Copie du document sans l'_id Mongo (None reste None)."""
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k != "_id"}
