from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple


class FacetKind(str, Enum):
    PRICE = "price"
    WEIGHT = "weight"
    CONDITION = "condition"
    QUANTITY = "quantity"
    MANUFACTURER = "manufacturer"
    ATTRIBUTE_GROUP = "attribute_group"
    FEATURE = "feature"
    CATEGORY = "category"


class WidgetType(str, Enum):
    SLIDER = "slider"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    COLOR_SWATCH = "color_swatch"


@dataclass(frozen=True)
class FacetDefinition:
    # kind stays a plain string so rows written by newer releases still load
    kind: str
    reference_id: Optional[int] = None
    display_limit: int = 0
    widget_type: str = WidgetType.CHECKBOX.value
    position: int = 0

    @property
    def key(self) -> Tuple[str, Optional[int]]:
        return (self.kind, self.reference_id)


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float

    def to_list(self) -> List[float]:
        return [self.min, self.max]

    @classmethod
    def from_value(cls, value: Any) -> "PriceRange | None":
        if value is None:
            return None
        if isinstance(value, dict):
            return cls(min=value["min"], max=value["max"])
        lo, hi = value
        return cls(min=lo, max=hi)


@dataclass
class SelectionState:
    """Active filter selections for one request, keyed by facet."""
    price: PriceRange | None = None
    weight: PriceRange | None = None
    condition: Set[str] = field(default_factory=set)
    quantity: Set[int] = field(default_factory=set)
    manufacturer: Set[int] = field(default_factory=set)
    category: Set[int] = field(default_factory=set)
    attribute_groups: Dict[int, Set[int]] = field(default_factory=dict)  # group id → attribute ids
    features: Dict[int, Set[int]] = field(default_factory=dict)  # feature id → feature value ids

    def is_empty(self) -> bool:
        return not (
            self.price or self.weight or self.condition or self.quantity or self.manufacturer
            or self.category or any(self.attribute_groups.values()) or any(self.features.values())
        )

    def has_attribute_group(self, group_id: int) -> bool:
        return bool(self.attribute_groups.get(group_id))

    def has_feature(self, feature_id: int) -> bool:
        return bool(self.features.get(feature_id))

    def to_dict(self) -> Dict[str, Any]:
        # Sorted everywhere: the result doubles as the cache fingerprint input
        return {
            "price": self.price.to_list() if self.price else None,
            "weight": self.weight.to_list() if self.weight else None,
            "condition": sorted(self.condition),
            "quantity": sorted(self.quantity),
            "manufacturer": sorted(self.manufacturer),
            "category": sorted(self.category),
            "attribute_groups": {str(k): sorted(v) for k, v in sorted(self.attribute_groups.items()) if v},
            "features": {str(k): sorted(v) for k, v in sorted(self.features.items()) if v},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectionState":
        return cls(
            price=PriceRange.from_value(data.get("price")),
            weight=PriceRange.from_value(data.get("weight")),
            condition={str(v) for v in data.get("condition") or []},
            quantity={int(v) for v in data.get("quantity") or []},
            manufacturer={int(v) for v in data.get("manufacturer") or []},
            category={int(v) for v in data.get("category") or []},
            attribute_groups={int(k): {int(v) for v in vs} for k, vs in (data.get("attribute_groups") or {}).items()},
            features={int(k): {int(v) for v in vs} for k, vs in (data.get("features") or {}).items()},
        )


@dataclass
class FacetValue:
    id: int | str
    label: str
    count: int = 0
    checked: bool = False
    url_slug: str | None = None
    meta_title: str | None = None
    color_swatch: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "count": self.count,
            "checked": self.checked,
            "url_slug": self.url_slug,
            "meta_title": self.meta_title,
            "color_swatch": self.color_swatch,
        }


@dataclass
class FacetBlock:
    kind: str
    key: int
    label: str
    widget_type: str
    display_limit: int = 0
    product_count: int | None = None

    variant = "base"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant": self.variant,
            "kind": self.kind,
            "key": self.key,
            "label": self.label,
            "widget_type": self.widget_type,
            "display_limit": self.display_limit,
            "product_count": self.product_count,
        }


@dataclass
class RangeBlock(FacetBlock):
    min: float | None = None
    max: float | None = None
    unit: str = ""
    selected_range: PriceRange | None = None
    format_spec: Dict[str, Any] = field(default_factory=dict)

    variant = "range"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            min=self.min,
            max=self.max,
            unit=self.unit,
            selected_range=self.selected_range.to_list() if self.selected_range else None,
            format_spec=self.format_spec,
        )
        return data


@dataclass
class ValueListBlock(FacetBlock):
    values: List[FacetValue] = field(default_factory=list)
    is_color_group: bool = False
    url_slug: str | None = None
    meta_title: str | None = None

    variant = "values"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            values=[v.to_dict() for v in self.values],
            is_color_group=self.is_color_group,
            url_slug=self.url_slug,
            meta_title=self.meta_title,
        )
        return data


def block_from_dict(data: Dict[str, Any]) -> FacetBlock:
    common = dict(
        kind=data["kind"],
        key=data["key"],
        label=data["label"],
        widget_type=data["widget_type"],
        display_limit=data.get("display_limit", 0),
        product_count=data.get("product_count"),
    )
    variant = data.get("variant")
    if variant == RangeBlock.variant:
        return RangeBlock(
            **common,
            min=data.get("min"),
            max=data.get("max"),
            unit=data.get("unit", ""),
            selected_range=PriceRange.from_value(data.get("selected_range")),
            format_spec=data.get("format_spec") or {},
        )
    if variant == ValueListBlock.variant:
        return ValueListBlock(
            **common,
            values=[FacetValue(**v) for v in data.get("values", [])],
            is_color_group=data.get("is_color_group", False),
            url_slug=data.get("url_slug"),
            meta_title=data.get("meta_title"),
        )
    raise ValueError(f"Unknown facet block variant: {variant!r}")
