#!/usr/bin/env python3
"""Diagram model CLI - edit swarm diagram JSON files from the command line."""

import argparse
import json
import logging
import sys
from pathlib import Path

from diagram_core import REGISTRY, DiagramType, serialize, validation_summary

from .config import EditorSettings, configure_logging, load_settings
from .diagram_manager import DiagramManager

logger = logging.getLogger(__name__)


def _json_out(data):
    print(json.dumps(data))


def _parse_json_arg(value, name):
    """Parse a JSON object argument; None when the option was not given."""
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"--{name} is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"--{name} must be a JSON object")
    return parsed


def _bounds_arg(args):
    bounds = {
        "x": getattr(args, "x", None),
        "y": getattr(args, "y", None),
        "width": getattr(args, "width", None),
        "height": getattr(args, "height", None),
    }
    bounds = {k: v for k, v in bounds.items() if v is not None}
    return bounds or None


def _open(args, settings: EditorSettings) -> DiagramManager:
    manager = DiagramManager(
        max_history=settings.persistence.max_history,
        indent=settings.persistence.indent,
    )
    manager.open_diagram(_diagram_path(args, settings))
    return manager


def _diagram_path(args, settings: EditorSettings) -> Path:
    path = Path(args.file)
    if not path.is_absolute() and len(path.parts) == 1:
        return settings.diagrams_dir / path
    return path


# ── Diagram ──────────────────────────────────────────────────────────────────

def cmd_new(args, settings):
    manager = DiagramManager(indent=settings.persistence.indent)
    diagram_type = DiagramType(args.type) if args.type else settings.default_diagram_type
    manager.new_diagram(diagram_type)
    path = manager.save_diagram(_diagram_path(args, settings))
    return {"status": "created", "file_path": str(path), "type": diagram_type.value}


def cmd_show(args, settings):
    manager = _open(args, settings)
    return {"status": "ok", "diagram": manager.export()}


def cmd_types(args, settings):
    elements = []
    for tag in REGISTRY.element_types:
        entry = REGISTRY.element_entry(tag)
        elements.append({
            "type": tag.value,
            "container": entry.container is not None,
            "min_width": entry.min_width,
            "min_height": entry.min_height,
            "allowed_relationships": sorted(k.value for k in REGISTRY.allowed_relationship_kinds(tag)),
            "defaults": serialize(REGISTRY.create_default(tag)),
        })
    relationships = [
        {"type": tag.value, "defaults": serialize(REGISTRY.create_default(tag))}
        for tag in REGISTRY.relationship_types
    ]
    return {
        "status": "ok",
        "elements": elements,
        "relationships": relationships,
        "generic_relationship": REGISTRY.generic_relationship.value,
    }


def cmd_validate(args, settings):
    manager = _open(args, settings)
    issues = manager.validate()
    return {
        "status": "ok",
        "summary": validation_summary(issues),
        "issues": [issue.to_dict() for issue in issues],
    }


# ── Elements ─────────────────────────────────────────────────────────────────

def cmd_add_element(args, settings):
    manager = _open(args, settings)
    values = _parse_json_arg(args.values, "values") or {}
    if args.name is not None:
        values["name"] = args.name
    bounds = _bounds_arg(args)
    if bounds:
        values["bounds"] = {**values.get("bounds", {}), **bounds}
    element = manager.add_element(args.type, owner=args.owner, **values)
    manager.save_diagram()
    return {"status": "created", "element": serialize(element)}


def cmd_update_element(args, settings):
    manager = _open(args, settings)
    changes = _parse_json_arg(args.changes, "changes") or {}
    if args.name is not None:
        changes["name"] = args.name
    bounds = _bounds_arg(args)
    if bounds:
        changes["bounds"] = {**changes.get("bounds", {}), **bounds}
    if not changes:
        raise ValueError("No changes given")
    element = manager.update_element(args.element_id, **changes)
    manager.save_diagram()
    return {"status": "updated", "element": serialize(element)}


def cmd_set_owner(args, settings):
    manager = _open(args, settings)
    element = manager.set_owner(args.element_id, args.owner)
    manager.save_diagram()
    return {"status": "updated", "element": serialize(element)}


def cmd_delete_element(args, settings):
    manager = _open(args, settings)
    if not manager.delete_element(args.element_id):
        raise ValueError(f"Element not found: {args.element_id}")
    manager.save_diagram()
    return {"status": "deleted", "element_id": args.element_id}


# ── Relationships ────────────────────────────────────────────────────────────

def cmd_add_relationship(args, settings):
    manager = _open(args, settings)
    values = _parse_json_arg(args.values, "values") or {}
    if args.name is not None:
        values["name"] = args.name
    relationship = manager.add_relationship(
        args.source,
        args.target,
        relationship_type=args.type,
        source_direction=args.source_direction,
        target_direction=args.target_direction,
        **values,
    )
    manager.save_diagram()
    result = {"status": "created", "relationship": serialize(relationship)}
    if relationship.type.value != args.type:
        result["requested_type"] = args.type
    return result


def cmd_update_relationship(args, settings):
    manager = _open(args, settings)
    changes = _parse_json_arg(args.changes, "changes") or {}
    if args.name is not None:
        changes["name"] = args.name
    if not changes and args.type is None:
        raise ValueError("No changes given")
    relationship = manager.update_relationship(args.relationship_id, relationship_type=args.type, **changes)
    manager.save_diagram()
    result = {"status": "updated", "relationship": serialize(relationship)}
    if args.type is not None and relationship.type.value != args.type:
        result["requested_type"] = args.type
    return result


def cmd_flip_relationship(args, settings):
    manager = _open(args, settings)
    before = manager.get_relationship(args.relationship_id)
    relationship = manager.flip_relationship(args.relationship_id)
    manager.save_diagram()
    result = {"status": "updated", "relationship": serialize(relationship)}
    if relationship.type != before.type:
        result["previous_type"] = before.type.value
    return result


def cmd_delete_relationship(args, settings):
    manager = _open(args, settings)
    if not manager.delete_relationship(args.relationship_id):
        raise ValueError(f"Relationship not found: {args.relationship_id}")
    manager.save_diagram()
    return {"status": "deleted", "relationship_id": args.relationship_id}


# ── Main ─────────────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(description="Swarm diagram model CLI")
    parser.add_argument("--config", default=None, help="YAML settings file")
    sub = parser.add_subparsers(dest="command", required=True)

    # Diagram
    p = sub.add_parser("new")
    p.add_argument("--file", required=True)
    p.add_argument("--type", default=None, choices=[t.value for t in DiagramType])

    p = sub.add_parser("show")
    p.add_argument("--file", required=True)

    sub.add_parser("types")

    p = sub.add_parser("validate")
    p.add_argument("--file", required=True)

    # Elements
    p = sub.add_parser("add-element")
    p.add_argument("--file", required=True)
    p.add_argument("--type", required=True)
    p.add_argument("--name", default=None)
    p.add_argument("--owner", default=None)
    p.add_argument("--x", type=float, default=None)
    p.add_argument("--y", type=float, default=None)
    p.add_argument("--width", type=float, default=None)
    p.add_argument("--height", type=float, default=None)
    p.add_argument("--values", default=None, help="JSON object of extra fields")

    p = sub.add_parser("update-element")
    p.add_argument("--file", required=True)
    p.add_argument("--element-id", required=True)
    p.add_argument("--name", default=None)
    p.add_argument("--x", type=float, default=None)
    p.add_argument("--y", type=float, default=None)
    p.add_argument("--width", type=float, default=None)
    p.add_argument("--height", type=float, default=None)
    p.add_argument("--changes", default=None, help="JSON object of fields to change")

    p = sub.add_parser("set-owner")
    p.add_argument("--file", required=True)
    p.add_argument("--element-id", required=True)
    p.add_argument("--owner", default=None, help="Container id; omit to move out of any container")

    p = sub.add_parser("delete-element")
    p.add_argument("--file", required=True)
    p.add_argument("--element-id", required=True)

    # Relationships
    p = sub.add_parser("add-relationship")
    p.add_argument("--file", required=True)
    p.add_argument("--source", required=True)
    p.add_argument("--target", required=True)
    p.add_argument("--type", default=REGISTRY.generic_relationship.value)
    p.add_argument("--name", default=None)
    p.add_argument("--source-direction", default=None)
    p.add_argument("--target-direction", default=None)
    p.add_argument("--values", default=None, help="JSON object of extra fields")

    p = sub.add_parser("update-relationship")
    p.add_argument("--file", required=True)
    p.add_argument("--relationship-id", required=True)
    p.add_argument("--type", default=None)
    p.add_argument("--name", default=None)
    p.add_argument("--changes", default=None, help="JSON object of fields to change")

    p = sub.add_parser("flip-relationship")
    p.add_argument("--file", required=True)
    p.add_argument("--relationship-id", required=True)

    p = sub.add_parser("delete-relationship")
    p.add_argument("--file", required=True)
    p.add_argument("--relationship-id", required=True)

    return parser


COMMANDS = {
    "new": cmd_new,
    "show": cmd_show,
    "types": cmd_types,
    "validate": cmd_validate,
    "add-element": cmd_add_element,
    "update-element": cmd_update_element,
    "set-owner": cmd_set_owner,
    "delete-element": cmd_delete_element,
    "add-relationship": cmd_add_relationship,
    "update-relationship": cmd_update_relationship,
    "flip-relationship": cmd_flip_relationship,
    "delete-relationship": cmd_delete_relationship,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(Path(args.config) if args.config else None)
        configure_logging(settings)
        result = COMMANDS[args.command](args, settings)
    except (ValueError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _json_out({"status": "error", "error": str(e)})
        return 1
    _json_out(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
