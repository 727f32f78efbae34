"""Render Schema nodes as Python type expressions.

Objects with properties are hoisted into ``TypedDict`` definitions, emitted in
dependency order so every name is defined before it is referenced.
"""

import keyword
import re

from ..parser.base import ArraySchema, EnumSchema, ObjectSchema, OneOfSchema, Schema

PRIMITIVES = {
    "string": "str",
    "number": "float",
    "integer": "int",
    "boolean": "bool",
    "null": "None",
    "any": "Any",
    "unknown": "Any",
}


def pascal_case(value: str, fallback: str = "Model") -> str:
    """``list pets`` / ``list_pets`` / ``listPets`` -> ``ListPets``."""
    parts = re.split(r"[^A-Za-z0-9]+", value or "")
    name = "".join(part[:1].upper() + part[1:] for part in parts if part)
    if not name:
        name = fallback
    if name[0].isdigit():
        name = fallback + name
    if keyword.iskeyword(name):
        name += "_"
    return name


def clean_text(text: str | None) -> str:
    """Collapse whitespace so a description fits on one comment line."""
    return " ".join((text or "").split())


def docstring_text(text: str | None) -> str:
    """One-line text that is safe inside a triple-quoted docstring."""
    text = clean_text(text).replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    return text + " " if text.endswith('"') else text


class TypeRenderer:
    """Renders schemas for one generated module.

    Attributes:
        definitions: Source blocks (TypedDict classes and aliases) in emission order.
    """

    def __init__(self, reserved: set[str] | None = None):
        self.definitions: list[str] = []
        self._names: set[str] = set(reserved or ())

    # -- names -------------------------------------------------------------

    def claim(self, hint: str) -> str:
        """Reserve a unique identifier derived from ``hint``."""
        base = pascal_case(hint)
        name, counter = base, 2
        while name in self._names:
            name = f"{base}{counter}"
            counter += 1
        self._names.add(name)
        return name

    @property
    def names(self) -> list[str]:
        return sorted(self._names)

    # -- rendering -----------------------------------------------------------

    def render(self, schema: Schema | None, hint: str) -> str:
        """Type expression for ``schema``; nested objects are hoisted under names based on ``hint``."""
        if schema is None:
            return "Any"
        if isinstance(schema, ObjectSchema):
            expr = self._object(schema, hint)
        elif isinstance(schema, ArraySchema):
            expr = f"list[{self.render(schema.element, hint + 'Item')}]"
        elif isinstance(schema, EnumSchema):
            expr = f"Literal[{', '.join(repr(v) for v in schema.values)}]" if schema.values else "Any"
        elif isinstance(schema, OneOfSchema):
            parts: list[str] = []
            for index, variant in enumerate(schema.variants):
                part = self.render(variant, f"{hint}Option{index + 1}")
                if part not in parts:
                    parts.append(part)
            expr = "Any" if "Any" in parts else " | ".join(parts)
        else:
            expr = PRIMITIVES.get(schema.kind, "Any")
        return _nullable(expr) if schema.nullable else expr

    def render_named(self, schema: Schema | None, name: str) -> None:
        """Emit a top-level definition called ``name`` (already claimed by the caller)."""
        if isinstance(schema, ObjectSchema) and schema.properties and not schema.nullable:
            self._object(schema, name, fixed=True)
            return
        hint = f"{name}Object" if isinstance(schema, ObjectSchema) else name
        self.definitions.append(f"{name} = {self.render(schema, hint)}")

    def typed_dict(
        self,
        name: str,
        fields: list[tuple[str, str, bool, str | None]],
        extra_items: str | None = None,
        doc: str | None = None,
    ) -> None:
        """Emit a TypedDict from ``(key, type, required, description)`` tuples."""
        self.definitions.append(typed_dict_source(name, fields, extra_items, doc))

    def _object(self, schema: ObjectSchema, hint: str, fixed: bool = False) -> str:
        extra = schema.additional_properties
        if not schema.properties:
            value = "Any" if extra is None or isinstance(extra, bool) else self.render(extra, hint + "Value")
            return f"dict[str, {value}]"

        name = hint if fixed else self.claim(hint)
        required = set(schema.required)
        fields = [
            (key, self.render(prop, name + pascal_case(key, "Field")), key in required, prop.description)
            for key, prop in schema.properties.items()
        ]
        extra_items = None
        if extra is True:
            extra_items = "Any"
        elif extra is not None and extra is not False:
            extra_items = self.render(extra, name + "Value")
        self.typed_dict(name, fields, extra_items, schema.description or schema.title)
        return name


def typed_dict_source(
    name: str,
    fields: list[tuple[str, str, bool, str | None]],
    extra_items: str | None = None,
    doc: str | None = None,
) -> str:
    """Class syntax when every key is a usable identifier, functional syntax otherwise."""
    entries = []
    for key, expr, required, description in fields:
        annotation = expr if required else f"NotRequired[{expr}]"
        entries.append((key, annotation, clean_text(description)))

    doc = docstring_text(doc)
    # dunder keys would be name-mangled inside a class body
    if all(key.isidentifier() and not keyword.iskeyword(key) and not key.startswith("__") for key, _, _ in entries):
        bases = "TypedDict" if extra_items is None else f"TypedDict, extra_items={extra_items}"
        lines = [f"class {name}({bases}):"]
        if doc:
            lines.append(f'    """{doc}"""')
            lines.append("")
        for key, annotation, description in entries:
            if description:
                lines.append(f"    #: {description}")
            lines.append(f"    {key}: {annotation}")
        return "\n".join(lines)

    lines = [f"# {doc}"] if doc else []
    lines += [f"{name} = TypedDict(", f"    {name!r},", "    {"]
    for key, annotation, description in entries:
        if description:
            lines.append(f"        #: {description}")
        lines.append(f"        {key!r}: {annotation},")
    lines.append("    },")
    if extra_items is not None:
        lines.append(f"    extra_items={extra_items},")
    lines.append(")")
    return "\n".join(lines)


def _nullable(expr: str) -> str:
    if expr in ("Any", "None") or expr.endswith("| None"):
        return expr
    return f"{expr} | None"
