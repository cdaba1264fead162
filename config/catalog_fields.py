"""
Catalog import schema.

Static description of the catalog item fields a bulk import can populate,
plus the header aliases used to guess a column mapping.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


class FieldType(str, Enum):
    """Primitive types a target field can declare."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"


@dataclass(frozen=True)
class TargetField:
    """One field of the catalog item schema."""
    key: str
    label: str
    type: FieldType = FieldType.STRING
    required: bool = False
    allowed_values: tuple[str, ...] = ()
    default: Any = None
    # Number constraints
    integer: bool = False
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    extract_year: bool = False  # "c 1913" -> 1913
    # String constraints
    max_length: Optional[int] = None
    # Enum tokens that resolve to an allowed value, e.g. "for sale" -> "published"
    enum_aliases: dict[str, str] = field(default_factory=dict)
    # Catalog's own identifier; never a mapping target
    reserved: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "key": self.key,
            "label": self.label,
            "type": self.type.value,
            "required": self.required,
            "allowed_values": list(self.allowed_values) or None,
            "default": self.default,
            "reserved": self.reserved,
        }


# =============================================================================
# CATALOG ITEM SCHEMA
# =============================================================================

CONDITIONS = ("new", "like-new", "very-good", "good", "acceptable", "fair", "poor")

STATUSES = ("draft", "pending", "published", "sold", "archived")

MAX_PRICE = 999999.99

MAX_TITLE_LENGTH = 500

# Upper bound moves with the calendar; fixed once per process
MAX_PUBLICATION_YEAR = date.today().year + 1

TARGET_FIELDS: tuple[TargetField, ...] = (
    TargetField("title", "Title", required=True, max_length=MAX_TITLE_LENGTH),
    TargetField("author", "Author"),
    TargetField("isbn", "ISBN"),
    TargetField("description", "Description"),
    TargetField("short_description", "Short Description"),
    TargetField("price", "Price", FieldType.NUMBER, required=True, min_value=0, max_value=MAX_PRICE),
    TargetField("quantity", "Quantity", FieldType.NUMBER, default=1, integer=True, min_value=0),
    TargetField("condition", "Condition", FieldType.ENUM, allowed_values=CONDITIONS),
    TargetField("category", "Category"),
    TargetField(
        "status",
        "Status",
        FieldType.ENUM,
        allowed_values=STATUSES,
        default="draft",
        enum_aliases={"for-sale": "published", "active": "published"},
    ),
    TargetField("sku", "SKU"),
    TargetField("images", "Images (URLs)"),
    TargetField("publisher", "Publisher"),
    TargetField(
        "publication_year",
        "Publication Year",
        FieldType.NUMBER,
        integer=True,
        extract_year=True,
        min_value=1000,
        max_value=MAX_PUBLICATION_YEAR,
    ),
    TargetField("edition", "Edition"),
    TargetField("language", "Language", default="English"),
    TargetField("binding", "Binding"),
    TargetField("is_signed", "Signed", FieldType.BOOLEAN),
    TargetField("weight", "Weight", FieldType.NUMBER, min_value=0),
    TargetField("legacy_id", "WP Post ID", FieldType.NUMBER, integer=True, min_value=1),
    TargetField("keywords", "Keywords/Tags"),
    TargetField("sid", "SID (Internal ID)", reserved=True),
)

FIELDS_BY_KEY: dict[str, TargetField] = {f.key: f for f in TARGET_FIELDS}

# Field that holds the catalog's own identifier
INTERNAL_ID_FIELD = "sid"

# Business key used by the external-identifier match strategy
EXTERNAL_ID_FIELD = "isbn"

# Historical foreign-system id carried over from the WordPress store
LEGACY_ID_FIELD = "legacy_id"


# =============================================================================
# HEADER ALIASES
# =============================================================================
# Keys and aliases are compared after normalize_header(): lowercase, only [a-z0-9].

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("title", "name", "product_name", "book_title", "item_name", "product_title"),
    "author": ("author", "authors", "writer", "by", "creator"),
    "isbn": ("isbn", "isbn10", "isbn_10", "isbn13", "isbn_13"),
    "description": (
        "description",
        "desc",
        "details",
        "full_description",
        "long_description",
        "product_description",
        "annotation",
    ),
    "short_description": ("short_description", "short_desc", "summary", "brief", "subtitle", "excerpt"),
    "price": ("price", "retail_price", "list_price", "sale_price", "amount", "unit_price"),
    "quantity": ("quantity", "qty", "stock", "inventory", "stock_quantity", "in_stock", "volumes"),
    "condition": ("condition", "item_condition", "book_condition", "state", "cond", "jacket_cond"),
    "category": ("category", "categories", "genre", "lists", "subject"),
    "status": ("status", "availability", "listing_status"),
    "sku": ("sku", "product_code", "item_number", "code", "barcode"),
    "images": (
        "images",
        "image",
        "image_url",
        "image_urls",
        "photo",
        "photos",
        "picture",
        "pictures",
        "thumbnail",
    ),
    "publisher": ("publisher", "pub", "publishing_house", "imprint", "place_pub"),
    "publication_year": (
        "publication_year",
        "year",
        "pub_year",
        "date_pub",
        "year_published",
        "date_published",
        "pub_date",
    ),
    "edition": ("edition", "ed", "printing"),
    "language": ("language", "lang", "languages"),
    "binding": ("binding", "binding_type", "format", "cover_type", "book_format"),
    "is_signed": ("signed", "is_signed", "autographed", "signed_text"),
    "weight": ("weight", "shipping_weight", "item_weight"),
    "legacy_id": ("wp_post_id", "wordpress_id", "post_id", "legacy_id"),
    "keywords": ("keywords", "tags", "keyword", "search_terms"),
}

# Headers that carry the catalog's own identifier. Detected at stage time,
# read only by the internal-id match strategy, never imported as data.
RESERVED_COLUMN_ALIASES: tuple[str, ...] = ("sid", "id", "internal_id", "book_id")

# Substring matches shorter than this are ignored ("by" inside "hobby")
MIN_PARTIAL_MATCH_LENGTH = 3
