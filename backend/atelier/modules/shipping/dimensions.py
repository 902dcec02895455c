"""
Package Dimension Resolver

Turns an order's layouts into the single package sent to the rate quote.

Per-unit size comes from the first strategy in RESOLUTION_CHAIN that
applies: the product model's own measurements, then the uniform-type
default table, then the generic default. Weight and height are multiplied
by quantity and summed (garments are stacked), width and length take the
maximum. Every fallback produces a warning so operators can fix the catalog;
missing data never fails a quote.

All sizes are centimetres and kilograms, the units the carrier API expects.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from atelier.core.utils import strip_accents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitDimensions:
    """Packed size of one garment."""
    weight: Decimal  # kg
    width: Decimal  # cm
    height: Decimal  # cm
    length: Decimal  # cm


def _dims(weight: str, width: str, height: str, length: str) -> UnitDimensions:
    return UnitDimensions(Decimal(weight), Decimal(width), Decimal(height), Decimal(length))


UNIFORM_TYPE_DEFAULTS: Mapping[str, UnitDimensions] = MappingProxyType({
    "manga_curta": _dims("0.30", "20", "2", "20"),
    "manga_longa": _dims("0.38", "20", "2.5", "20"),
    "regata": _dims("0.22", "20", "1.5", "20"),
    "ziper": _dims("0.55", "25", "4", "30"),
})

GENERIC_DEFAULT = _dims("0.40", "25", "3", "30")

# Carrier limits: anything outside them is rejected by the quote API
MIN_WEIGHT = Decimal("0.3")
MIN_WIDTH = Decimal("11")
MIN_LENGTH = Decimal("16")
MIN_HEIGHT = Decimal("2")
MAX_SIDE = Decimal("100")


class DimensionSource(str, Enum):
    MODEL = "model"
    UNIFORM_TYPE = "uniform_type"
    GENERIC = "generic"


@dataclass(frozen=True)
class ModelInput:
    """Product model fields relevant to shipping; any measurement may be None."""
    id: str
    name: str
    weight: Optional[Decimal] = None
    width: Optional[Decimal] = None
    height: Optional[Decimal] = None
    depth: Optional[Decimal] = None
    uniform_type: Optional[str] = None

    @property
    def has_dimensions(self) -> bool:
        return all(v is not None for v in (self.weight, self.width, self.height, self.depth))


@dataclass(frozen=True)
class LayoutInput:
    quantity: Optional[int]
    uniform_type: Optional[str] = None
    model: Optional[ModelInput] = None

    @property
    def units(self) -> int:
        if self.quantity and self.quantity > 0:
            return self.quantity
        return 1


@dataclass(frozen=True)
class Resolution:
    dimensions: UnitDimensions
    source: DimensionSource
    uniform_type: Optional[str] = None


@dataclass
class ResolvedPackage:
    """Aggregate package plus the data-quality warnings behind it."""
    weight: Decimal
    width: Decimal
    height: Decimal
    length: Decimal
    total_quantity: int
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {
            "weight": self.weight,
            "width": self.width,
            "height": self.height,
            "length": self.length,
            "total_quantity": self.total_quantity,
        }


def normalize_uniform_type(tag: Optional[str]) -> Optional[str]:
    """"Manga Longa", "manga-longa", "MANGA_LONGA" -> "manga_longa"."""
    if not tag:
        return None
    normalized = strip_accents(tag).strip().lower().replace("-", " ")
    normalized = "_".join(normalized.split())
    return normalized or None


# =============================================================================
# Resolution strategies (tried in order, first non-None wins)
# =============================================================================

def from_model(layout: LayoutInput) -> Optional[Resolution]:
    model = layout.model
    if model is None or not model.has_dimensions:
        return None
    return Resolution(
        dimensions=UnitDimensions(
            weight=model.weight,
            width=model.width,
            height=model.height,
            length=model.depth,
        ),
        source=DimensionSource.MODEL,
    )


def from_uniform_type(layout: LayoutInput) -> Optional[Resolution]:
    tags = [layout.uniform_type]
    if layout.model is not None:
        tags.append(layout.model.uniform_type)

    for tag in tags:
        key = normalize_uniform_type(tag)
        if key in UNIFORM_TYPE_DEFAULTS:
            return Resolution(
                dimensions=UNIFORM_TYPE_DEFAULTS[key],
                source=DimensionSource.UNIFORM_TYPE,
                uniform_type=key,
            )
    return None


def generic_default(layout: LayoutInput) -> Optional[Resolution]:
    return Resolution(dimensions=GENERIC_DEFAULT, source=DimensionSource.GENERIC)


RESOLUTION_CHAIN: Tuple[Callable[[LayoutInput], Optional[Resolution]], ...] = (
    from_model,
    from_uniform_type,
    generic_default,
)


def resolve_unit(layout: LayoutInput) -> Resolution:
    """Per-unit dimensions for one layout."""
    for strategy in RESOLUTION_CHAIN:
        resolution = strategy(layout)
        if resolution is not None:
            return resolution
    raise RuntimeError("RESOLUTION_CHAIN must end with an unconditional strategy")


def _describe(resolution: Resolution) -> str:
    if resolution.source == DimensionSource.UNIFORM_TYPE:
        return f"'{resolution.uniform_type}' uniform defaults"
    return "generic defaults"


def _clamp(package: ResolvedPackage) -> None:
    for name, floor in (
        ("weight", MIN_WEIGHT),
        ("width", MIN_WIDTH),
        ("height", MIN_HEIGHT),
        ("length", MIN_LENGTH),
    ):
        if getattr(package, name) < floor:
            setattr(package, name, floor)

    for name in ("width", "height", "length"):
        value = getattr(package, name)
        if value > MAX_SIDE:
            package.warnings.append(
                f"Package {name} of {value} cm exceeds the carrier limit; capped at {MAX_SIDE} cm"
            )
            setattr(package, name, MAX_SIDE)


def resolve_package(
    layouts: Sequence[LayoutInput],
    fallback_quantity: Optional[int] = None,
) -> ResolvedPackage:
    """
    Aggregate layouts into one package.

    Args:
        layouts: The order's layouts
        fallback_quantity: Raw order quantity, used only when there are no layouts

    Returns:
        ResolvedPackage clamped to carrier limits, with warnings for every fallback
    """
    weight = Decimal("0")
    height = Decimal("0")
    width = Decimal("0")
    length = Decimal("0")
    total_quantity = 0
    warnings: List[str] = []

    if not layouts:
        units = fallback_quantity if fallback_quantity and fallback_quantity > 0 else 1
        dims = GENERIC_DEFAULT
        warnings.append(
            f"Order has no layouts; estimated {units} unit(s) with generic defaults"
        )
        logger.info(f"No layouts, using generic defaults for {units} unit(s)")
        package = ResolvedPackage(
            weight=dims.weight * units,
            width=dims.width,
            height=dims.height * units,
            length=dims.length,
            total_quantity=units,
            warnings=warnings,
        )
        _clamp(package)
        return package

    # model id -> (name, units, resolution); insertion order keeps warnings stable
    undimensioned_models: Dict[str, Tuple[str, int, Resolution]] = {}
    modelless_layouts = 0
    modelless_units = 0
    modelless_sources = set()

    for layout in layouts:
        units = layout.units
        resolution = resolve_unit(layout)
        dims = resolution.dimensions

        weight += dims.weight * units
        height += dims.height * units
        width = max(width, dims.width)
        length = max(length, dims.length)
        total_quantity += units

        if resolution.source == DimensionSource.MODEL:
            continue

        if layout.model is not None:
            name, seen_units, _ = undimensioned_models.get(
                layout.model.id, (layout.model.name, 0, resolution)
            )
            undimensioned_models[layout.model.id] = (name, seen_units + units, resolution)
        else:
            modelless_layouts += 1
            modelless_units += units
            modelless_sources.add(_describe(resolution))

    for name, units, resolution in undimensioned_models.values():
        warnings.append(
            f"Model '{name}' has no complete dimensions; used {_describe(resolution)} for {units} unit(s)"
        )

    if modelless_layouts:
        warnings.append(
            f"{modelless_layouts} layout(s) without a product model; "
            f"used {' and '.join(sorted(modelless_sources))} for {modelless_units} unit(s)"
        )

    for warning in warnings:
        logger.info(f"Dimension fallback: {warning}")

    package = ResolvedPackage(
        weight=weight,
        width=width,
        height=height,
        length=length,
        total_quantity=total_quantity,
        warnings=warnings,
    )
    _clamp(package)
    return package


def resolve_declared_value(
    order_value: Optional[Decimal],
    latest_quote_total: Optional[Decimal],
    default: Decimal,
) -> Tuple[Decimal, Optional[str]]:
    """
    Pick the insurable value: order value, else latest approved/sent quote, else default.

    Returns:
        (value, warning) where warning is set only when the default was used
    """
    if order_value is not None and order_value > 0:
        return order_value, None
    if latest_quote_total is not None and latest_quote_total > 0:
        return latest_quote_total, None
    return default, (
        f"Order has no value and no approved or sent quote; declared value set to {default}"
    )
