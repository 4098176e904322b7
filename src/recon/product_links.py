from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote_plus


MARKETPLACE_SEARCH_URL = "https://www.ebay.com/sch/i.html"
MARKETPLACE_PARTS_CATEGORY = "6030"
REPLACEMENT_PART_LABEL = "View Replacement Part"


@dataclass(frozen=True)
class ProductLink:
    url: str
    label: str


def _amazon_search(terms: str) -> str:
    return f"https://www.amazon.com/s?k={quote_plus(terms)}"


# First matching rule wins; each rule is (repair keywords, location keywords, link).
_CLEANING_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...], ProductLink], ...] = (
    (("touch_up", "paint_chip"), (), ProductLink(_amazon_search("automotive touch up paint pen"), "View Touch-Up Paint Products")),
    (("buff", "polish", "scratch"), (), ProductLink(_amazon_search("car scratch remover compound"), "View Scratch Removal Products")),
    (
        ("shampoo", "detail", "stain"),
        ("interior", "seat", "carpet"),
        ProductLink(_amazon_search("automotive interior cleaner shampoo"), "View Interior Cleaning Products"),
    ),
    (("leather", "tear", "burn"), (), ProductLink(_amazon_search("leather repair kit automotive"), "View Leather Repair Products")),
    (("headlight", "restoration", "foggy"), (), ProductLink(_amazon_search("headlight restoration kit"), "View Headlight Restoration Kits")),
    (("curb_rash", "wheel"), ("wheel",), ProductLink(_amazon_search("wheel cleaner rim cleaner"), "View Wheel Cleaning Products")),
    (("detail", "clean"), (), ProductLink(_amazon_search("automotive detailing products"), "View Detailing Products")),
)


def cleaning_product_link(repair_type: str, location: str) -> ProductLink | None:
    repair = repair_type.lower()
    where = location.lower()
    for repair_words, location_words, link in _CLEANING_RULES:
        if any(w in repair for w in repair_words) or any(w in where for w in location_words):
            return link
    return None


def marketplace_search_url(part_name: str, year: int, make: str, model: str) -> str:
    query = quote_plus(f"{part_name} {year} {make} {model}")
    return f"{MARKETPLACE_SEARCH_URL}?_nkw={query}&_sacat={MARKETPLACE_PARTS_CATEGORY}"
