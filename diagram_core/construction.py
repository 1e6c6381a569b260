"""
Element and relationship construction from registry defaults.

`build_from_partial` is the only way new records are made: it starts from the
registry default record, overlays the caller's partial record field by field,
validates the result into the kind's model and raises undersized bounds to the
kind minimum.

Merge precedence (highest first):
1. Fields present in the partial record (a value of None counts as absent)
2. Registry defaults for the kind
3. Model field defaults

Nested mappings (`bounds`, `source`, `target`) merge recursively, so
`{"bounds": {"width": 90}}` keeps the default x, y and height. Lists and
scalars replace.
"""

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from .errors import DiagramModelError, SerializationError
from .models import Element, Relationship
from .registry import REGISTRY, ElementTypeEntry, TypeRegistry
from .types import parse_type_tag

STYLE_KEYS = {"fillColor", "strokeColor", "textColor"}


def merge_defaults(defaults: Mapping[str, Any], partial: Optional[Mapping[str, Any]]) -> dict:
    """
    Overlay `partial` onto `defaults` and return a new plain dict.

    Args:
        defaults: The base record (not modified)
        partial: Fields to overlay; None values are skipped

    Returns:
        A new dict; nested mappings are copied, never shared with the inputs
    """
    merged = {key: _thaw(value) for key, value in defaults.items()}
    for key, value in (partial or {}).items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_defaults(current, value)
        else:
            merged[key] = _thaw(value)
    return merged


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_thaw(item) for item in value]
    return value


def to_wire_keys(model: type[BaseModel], partial: Optional[Mapping[str, Any]]) -> dict:
    """
    Rename python field names in `partial` to the model's JSON aliases.

    A nested `style` mapping is flattened onto the color fields; colors given
    at the top level take precedence over the ones inside `style`.
    """
    if not partial:
        return {}
    aliases = {
        name: field.alias or name
        for name, field in model.model_fields.items()
    }
    result: dict = {}
    style = partial.get("style")
    if isinstance(style, Mapping):
        for key, value in style.items():
            wire_key = aliases.get(key, key)
            if wire_key in STYLE_KEYS:
                result[wire_key] = value
    for key, value in partial.items():
        if key == "style":
            continue
        result[aliases.get(key, key)] = value
    return result


def check_known_fields(models: tuple[type[BaseModel], ...], wire_partial: Mapping[str, Any], what: str) -> None:
    """
    Raise DiagramModelError for keys none of `models` defines.

    `wire_partial` must already have gone through `to_wire_keys`. Documents on
    import are not checked; unknown keys there are dropped.
    """
    known = {"style"}
    for model in models:
        known.update(field.alias or name for name, field in model.model_fields.items())
    unknown = sorted(set(wire_partial) - known)
    if unknown:
        raise DiagramModelError(f"Unknown field(s) for {what}: {', '.join(unknown)}")


def enforce_minimum_size(element: Element, registry: TypeRegistry = REGISTRY) -> Element:
    """Return `element` with width/height raised to the kind minimum (never shrinks)."""
    entry = registry.element_entry(element.type)
    return _raise_to_minimum(element, entry)


def _raise_to_minimum(element: Element, entry: ElementTypeEntry) -> Element:
    bounds = element.bounds
    if bounds.width >= entry.min_width and bounds.height >= entry.min_height:
        return element
    raised = bounds.model_copy(update={
        "width": max(bounds.width, entry.min_width),
        "height": max(bounds.height, entry.min_height),
    })
    return element.model_copy(update={"bounds": raised})


def build_from_partial(
    type_tag: object,
    partial: Optional[Mapping[str, Any]] = None,
    registry: TypeRegistry = REGISTRY,
) -> Union[Element, Relationship]:
    """
    Build an element or relationship of `type_tag` from a partial record.

    Raises:
        UnknownTypeError: if the tag is not registered
        SerializationError: if the merged record does not validate
    """
    tag = parse_type_tag(type_tag)
    entry = registry.entry(tag)
    overlay = to_wire_keys(entry.model, partial)
    overlay.pop("type", None)
    record = merge_defaults(entry.defaults, overlay)
    record["type"] = tag
    try:
        instance = entry.model.model_validate(record)
    except ValidationError as exc:
        raise SerializationError(f"Invalid {tag.value} record: {exc}") from exc
    if isinstance(entry, ElementTypeEntry):
        return _raise_to_minimum(instance, entry)
    return instance
