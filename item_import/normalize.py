"""Row Normalization Utilities.

SoftOne rows arrive with ERP-native keys ("MTRL", "Stock QTY",
"COMMECATEGORY NAME", ...). This module converts them into NormalizedItem,
the only form the import logic consumes. The process:
1. Snake-case every key
2. Pick the first populated alias for each field
3. Coerce numbers, trim strings, treat blanks as absent
4. Split a trailing " | colour" suffix off the description when no explicit
   colour column is present

Examples:
    {"MTRL": 1001, "Stock QTY": "4"}           → mtrl="1001", stock_quantity=4.0
    {"DESC": "Jogger Pants | blk"}             → name="Jogger Pants", colour="Black"
    {"COMMERCATEGORY NAME": "Kids"}            → category="Kids"
"""

import hashlib
import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from item_import.models import NormalizedItem

logger = logging.getLogger(__name__)


# Field -> snake_case source keys, first populated wins
FIELD_ALIASES = {
    "mtrl": ("mtrl",),
    "sku": ("sku",),
    "barcode": ("barcode",),
    "code": ("code",),
    "name": ("desc", "name", "description"),
    "description": ("remarks", "long_description", "long_desc"),
    "price": ("retailprice", "retail_price", "price"),
    "stock_quantity": ("stock_qty", "qty", "stock"),
    "brand": ("brand_name", "brand"),
    "category": ("commecategory_name", "commercategory_name", "category_name"),
    "subcategory": ("submecategory_name", "subcategory_name"),
    "colour": ("colour_name", "color_name", "colour", "color"),
    "size": ("size_name", "size"),
}

COLOUR_ALIASES = {
    "blk": "Black",
    "black": "Black",
    "denim blue": "Denim Blue",
    "olive green": "Olive Green",
    "sepia black": "Sepia Black",
    "-": "",
}

_COLOUR_SUFFIX = re.compile(r"\s*\|\s*([^|]+?)\s*$", re.UNICODE)


def normalize_key(key: str) -> str:
    """Snake-case an ERP column name.

    Examples:
        >>> normalize_key("Stock QTY")
        'stock_qty'
        >>> normalize_key("BRAND NAME")
        'brand_name'
    """
    key = re.sub(r"[^\w]+", "_", str(key).strip(), flags=re.UNICODE)
    return key.strip("_").lower()


def normalize_keys(row: Dict[str, Any]) -> Dict[str, Any]:
    """Snake-case all keys. On collisions the first non-blank value wins."""
    normalized: Dict[str, Any] = {}
    for key, value in row.items():
        nkey = normalize_key(key)
        if nkey not in normalized or _blank(normalized[nkey]):
            normalized[nkey] = value
    return normalized


def normalize_colour_name(colour: str) -> str:
    """Map colour shorthands to display names, otherwise title-case.

    Examples:
        >>> normalize_colour_name("blk")
        'Black'
        >>> normalize_colour_name("navy blue")
        'Navy Blue'
    """
    colour = (colour or "").strip()
    alias = COLOUR_ALIASES.get(colour.lower())
    if alias is not None:
        return alias
    return colour.title()


def split_colour_suffix(desc: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "Name | colour" into ("Name", "Colour").

    Returns the description unchanged and no colour when there is no suffix
    or the suffix is a placeholder.
    """
    if not desc:
        return desc, None
    match = _COLOUR_SUFFIX.search(desc)
    if not match:
        return desc, None
    colour = normalize_colour_name(match.group(1))
    base = desc[: match.start()].strip()
    return (base or desc), (colour or None)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _number(value: Any) -> Optional[float]:
    if _blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().replace(" ", "").replace("\u00a0", "")
    if "," in text and "." in text:
        # The separator that comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(",") == 1:
        text = text.replace(",", ".")
    elif text.count(",") > 1 or text.count(".") > 1:
        text = text.replace(",", "").replace(".", "")

    try:
        return float(text)
    except ValueError:
        logger.warning(f"Could not parse numeric value {value!r}; ignoring it")
        return None


def _pick(row: Dict[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        value = row.get(key)
        if not _blank(value):
            return value
    return None


def normalize_row(raw: Dict[str, Any]) -> NormalizedItem:
    """Convert a raw SoftOne row into a NormalizedItem."""
    row = normalize_keys(raw)

    name = _text(_pick(row, "name"))
    colour = _text(_pick(row, "colour"))
    if colour:
        colour = normalize_colour_name(colour) or None
    else:
        name, colour = split_colour_suffix(name)

    return NormalizedItem(
        mtrl=_text(_pick(row, "mtrl")),
        sku=_text(_pick(row, "sku")),
        barcode=_text(_pick(row, "barcode")),
        code=_text(_pick(row, "code")),
        name=name,
        description=_text(_pick(row, "description")),
        price=_number(_pick(row, "price")),
        stock_quantity=_number(_pick(row, "stock_quantity")),
        brand=_text(_pick(row, "brand")),
        category=_text(_pick(row, "category")),
        subcategory=_text(_pick(row, "subcategory")),
        colour=colour,
        size=_text(_pick(row, "size")),
        raw=row,
    )


def payload_hash(item: NormalizedItem) -> str:
    """Stable fingerprint of the fields the import applies."""
    data = item.model_dump(exclude={"raw"})
    encoded = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha1(encoded).hexdigest()
