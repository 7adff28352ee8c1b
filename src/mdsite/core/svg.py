"""SVG cleaning and inlining.

The cleaner works on an ElementTree document and only performs rewrites
that keep the rendering unchanged: editor metadata and descriptive
elements go away, single-use `<use>` references are expanded, attribute-less
or transform-only groups are dissolved, pure translations are folded into
coordinates, duplicate gradients are merged, default and unreferenced
attributes are dropped, and numbers are rounded to a fixed number of
significant digits. Relative path commands are left as they are.
"""

import logging
import math
import re
from copy import deepcopy
from typing import Iterator, Optional
from xml.etree import ElementTree as ET

from mdsite.core.utils.hashing import short_digest


logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
XML_NS = "http://www.w3.org/XML/1998/namespace"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

NUMBER = r"[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?"
NUMBER_RE = re.compile(NUMBER)
PATH_TOKEN_RE = re.compile(rf"([MmZzLlHhVvCcSsQqTtAa])|({NUMBER})")
TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")
URL_REF_RE = re.compile(r"url\(\s*['\"]?#([^)'\"\s]+)['\"]?\s*\)")

REMOVED_ELEMENTS = {"desc", "metadata", "title"}
TEXT_ELEMENTS = {"text", "tspan", "textPath", "style", "script", "title"}
NON_RENDERING = {"clipPath", "mask", "defs", "symbol", "pattern", "marker", "linearGradient", "radialGradient", "filter"}
REFERENCE_ONLY = {"linearGradient", "radialGradient", "pattern", "clipPath", "mask", "filter", "marker", "symbol"}
SHAPES = {"path", "rect", "circle", "ellipse", "line", "polyline", "polygon", "image", "text", "use", "g"}

# Presentation attribute defaults. All but opacity and display are inherited.
DEFAULTS = {
    "opacity": "1",
    "display": "inline",
    "fill-opacity": "1",
    "stroke": "none",
    "stroke-opacity": "1",
    "stroke-width": "1",
    "stroke-dasharray": "none",
    "stroke-dashoffset": "0",
    "stroke-linecap": "butt",
    "stroke-linejoin": "miter",
    "stroke-miterlimit": "4",
    "fill-rule": "nonzero",
    "clip-rule": "nonzero",
    "visibility": "visible",
    "font-style": "normal",
}
NON_INHERITED = {"opacity", "display"}
ZERO_DEFAULTS = {
    "rect": ("x", "y"),
    "image": ("x", "y"),
    "circle": ("cx", "cy"),
    "ellipse": ("cx", "cy"),
    "line": ("x1", "y1", "x2", "y2"),
}
NUMERIC_ATTRS = {
    "x", "y", "width", "height", "cx", "cy", "r", "rx", "ry", "fx", "fy",
    "x1", "y1", "x2", "y2", "dx", "dy", "offset", "stroke-width",
    "opacity", "fill-opacity", "stroke-opacity", "stop-opacity",
    "d", "points", "viewBox", "transform", "gradientTransform", "patternTransform",
}
# Arguments per path command, as (axis...) with x = 0 and y = 1.
PATH_AXES = {
    "M": (0, 1), "L": (0, 1), "T": (0, 1), "H": (0,), "V": (1,),
    "C": (0, 1, 0, 1, 0, 1), "S": (0, 1, 0, 1), "Q": (0, 1, 0, 1), "Z": (),
}


class SvgError(ValueError):
    """The document cannot be cleaned or annotated."""


def local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def namespace(tag: str) -> str:
    return tag[1:].split("}", 1)[0] if isinstance(tag, str) and tag.startswith("{") else ""


def qualified(like: str, name: str) -> str:
    """Element name `name` in the same namespace as tag `like`."""
    ns = namespace(like)
    return f"{{{ns}}}{name}" if ns else name


def _parents(root: ET.Element) -> dict[ET.Element, ET.Element]:
    return {child: parent for parent in root.iter() for child in parent}


def _ancestors(el: ET.Element, parents: dict) -> Iterator[ET.Element]:
    while el in parents:
        el = parents[el]
        yield el


def style_declarations(value: str) -> dict[str, str]:
    """Parse an inline `style` attribute into {property: value}."""
    declarations = {}
    for item in value.split(";"):
        name, sep, val = item.partition(":")
        if sep and name.strip():
            declarations[name.strip()] = val.strip()
    return declarations


def _is_href(name: str) -> bool:
    return name == "href" or name == f"{{{XLINK_NS}}}href"


def references(root: ET.Element) -> dict[str, int]:
    """Count references to each id from href attributes and url(#id) values."""
    counts: dict[str, int] = {}
    for el in root.iter():
        for name, value in el.attrib.items():
            found = URL_REF_RE.findall(value)
            if _is_href(name) and value.startswith("#"):
                found.append(value[1:])
            for ref in found:
                counts[ref] = counts.get(ref, 0) + 1
        if local(el.tag) == "style" and el.text:
            for ref in URL_REF_RE.findall(el.text):
                counts[ref] = counts.get(ref, 0) + 1
    return counts


def _fmt(value: float) -> str:
    out = f"{value:.12g}"
    return "0" if out == "-0" else out


def round_number(text: str, precision: int) -> str:
    """Round a number to `precision` significant digits without touching its integer part.

    Integers are returned unchanged, which keeps arc flags intact.
    """
    if not any(c in text for c in ".eE"):
        return text
    value = float(text)
    if value == 0 or not math.isfinite(value):
        return "0"
    magnitude = abs(value)
    if magnitude >= 1:
        decimals = max(precision - len(str(int(magnitude))), 0)
    else:
        decimals = min(precision - 1 - math.floor(math.log10(magnitude)), 12)
    out = f"{value:.{decimals}f}"
    if "." in out:
        out = out.rstrip("0").rstrip(".")
    return "0" if out in ("-0", "", "-") else out


def round_numbers(value: str, precision: int) -> str:
    """Round every number in an attribute value, keeping adjacent numbers separable."""
    def repl(m: re.Match) -> str:
        out = round_number(m.group(0), precision)
        before = m.string[m.start() - 1:m.start()]
        after = m.string[m.end():m.end() + 1]
        if before and (before.isdigit() or before == ".") and not out.startswith(("-", "+")):
            out = " " + out
        if after == "." and "." not in out:
            out += " "
        return out
    return NUMBER_RE.sub(repl, value)


def parse_transform(text: str) -> tuple[float, ...]:
    """Parse a transform list into a single affine matrix (a, b, c, d, e, f)."""
    matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)
    rest = TRANSFORM_RE.sub("", text).replace(",", " ").strip()
    if rest:
        raise SvgError(f"unparseable transform `{text}`")
    for name, args in TRANSFORM_RE.findall(text):
        nums = [float(n) for n in NUMBER_RE.findall(args)]
        if name == "matrix" and len(nums) == 6:
            step = tuple(nums)
        elif name == "translate" and len(nums) in (1, 2):
            step = (1.0, 0.0, 0.0, 1.0, nums[0], nums[1] if len(nums) == 2 else 0.0)
        elif name == "scale" and len(nums) in (1, 2):
            step = (nums[0], 0.0, 0.0, nums[1] if len(nums) == 2 else nums[0], 0.0, 0.0)
        elif name == "rotate" and len(nums) in (1, 3):
            cx, cy = (nums[1], nums[2]) if len(nums) == 3 else (0.0, 0.0)
            a = math.radians(nums[0])
            cos, sin = math.cos(a), math.sin(a)
            step = (cos, sin, -sin, cos, cx - cos * cx + sin * cy, cy - sin * cx - cos * cy)
        elif name == "skewX" and len(nums) == 1:
            step = (1.0, 0.0, math.tan(math.radians(nums[0])), 1.0, 0.0, 0.0)
        elif name == "skewY" and len(nums) == 1:
            step = (1.0, math.tan(math.radians(nums[0])), 0.0, 1.0, 0.0, 0.0)
        else:
            raise SvgError(f"unparseable transform `{text}`")
        matrix = _multiply(matrix, step)
    return matrix


def _multiply(m: tuple[float, ...], n: tuple[float, ...]) -> tuple[float, ...]:
    a, b, c, d, e, f = m
    A, B, C, D, E, F = n
    return (
        a * A + c * B, b * A + d * B,
        a * C + c * D, b * C + d * D,
        a * E + c * F + e, b * E + d * F + f,
    )


def translate_path(d: str, tx: float, ty: float) -> Optional[str]:
    """Shift absolute path coordinates by (tx, ty). None for paths this cannot handle (arcs)."""
    tokens = PATH_TOKEN_RE.findall(d)
    if any(cmd in ("A", "a") for cmd, _ in tokens):
        return None
    if PATH_TOKEN_RE.sub("", d).replace(",", "").strip():
        return None

    out: list[str] = []
    command = None
    args: list[float] = []
    first = True

    def flush() -> bool:
        nonlocal first
        upper = command.upper()
        axes = PATH_AXES[upper]
        if (axes and len(args) % len(axes)) or (not axes and args):
            return False
        absolute = command.isupper() or (first and command == "m")
        shifted = []
        for i, value in enumerate(args):
            if absolute and (command != "m" or i < 2):
                value += tx if axes[i % len(axes)] == 0 else ty
            shifted.append(_fmt(value))
        out.append(command + " ".join(shifted))
        first = False
        return True

    for cmd, number in tokens:
        if cmd:
            if command is not None and not flush():
                return None
            command, args = cmd, []
        elif command is None:
            return None
        else:
            args.append(float(number))
    if command is not None and not flush():
        return None
    return " ".join(out)


def serialize(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode")


def parse_svg(source: str) -> ET.Element:
    """Parse SVG source; raises ET.ParseError on malformed XML."""
    return ET.fromstring(source)


class SvgCleaner:
    """In-place, rendering-preserving cleanup of a parsed SVG document."""

    def __init__(self, precision: int = 3):
        self.precision = precision

    def clean(self, root: ET.Element) -> ET.Element:
        if local(root.tag) != "svg":
            raise SvgError(f"root element is `{local(root.tag)}`, not `svg`")
        self.strip_non_content(root)
        self.resolve_use(root)
        self.remove_invisible(root)
        self.ungroup_groups(root)
        self.apply_translations(root)
        self.merge_duplicate_gradients(root)
        self.remove_default_attributes(root, {})
        self.remove_unreferenced_ids(root)
        self.remove_unused_defs(root)
        self.ungroup_defs(root)
        self.round_precision(root)
        return root

    def strip_non_content(self, root: ET.Element) -> None:
        """Drop descriptive and editor-specific elements, foreign attributes and layout whitespace."""
        root.attrib.pop("version", None)
        for parent in list(root.iter()):
            for child in list(parent):
                if not isinstance(child.tag, str):
                    parent.remove(child)
                elif local(child.tag) in REMOVED_ELEMENTS and namespace(child.tag) in (SVG_NS, ""):
                    parent.remove(child)
                elif namespace(child.tag) not in (SVG_NS, "") and local(parent.tag) != "foreignObject":
                    parent.remove(child)
        for el in root.iter():
            for name in list(el.attrib):
                if namespace(name) not in ("", XLINK_NS, XML_NS):
                    del el.attrib[name]
            if local(el.tag) not in TEXT_ELEMENTS:
                if el.text and not el.text.strip():
                    el.text = None
                for child in el:
                    if child.tail and not child.tail.strip():
                        child.tail = None

    def resolve_use(self, root: ET.Element) -> None:
        """Replace a <use> with a copy of its target when that is the target's only reference."""
        ids = {el.get("id"): el for el in root.iter() if el.get("id")}
        counts = references(root)
        parents = _parents(root)
        for use in [el for el in root.iter() if local(el.tag) == "use"]:
            href = next((v for k, v in use.attrib.items() if _is_href(k)), "")
            target = ids.get(href[1:]) if href.startswith("#") else None
            if target is None or counts.get(href[1:]) != 1:
                continue
            if local(target.tag) in ("svg", "symbol") or target is use or target in _ancestors(use, parents):
                continue

            group = ET.Element(qualified(use.tag, "g"))
            for name, value in use.attrib.items():
                if not _is_href(name) and name not in ("x", "y", "width", "height"):
                    group.set(name, value)
            x, y = use.get("x", "0"), use.get("y", "0")
            if (x, y) != ("0", "0"):
                group.set("transform", f"{use.get('transform', '')} translate({x} {y})".strip())
            clone = deepcopy(target)
            for el in clone.iter():
                el.attrib.pop("id", None)
            group.append(clone)
            group.tail = use.tail

            parent = parents[use]
            index = list(parent).index(use)
            parent.remove(use)
            parent.insert(index, group)
            parents = _parents(root)

    def remove_invisible(self, root: ET.Element) -> None:
        """Remove rendered elements that cannot produce any pixels."""
        parents = _parents(root)
        for el in list(root.iter()):
            name = local(el.tag)
            if name not in SHAPES or el not in parents:
                continue
            if any(local(a.tag) in NON_RENDERING for a in _ancestors(el, parents)):
                continue
            if self._invisible(el, name):
                parents[el].remove(el)

    @staticmethod
    def _invisible(el: ET.Element, name: str) -> bool:
        if el.get("display") == "none" or el.get("opacity") in ("0", "0.0"):
            return True
        zero = ("0", "0.0", "0px")
        if name == "rect" and (el.get("width") in zero or el.get("height") in zero):
            return True
        if name == "circle" and el.get("r") in zero + (None,):
            return True
        if name == "ellipse" and (el.get("rx") in zero or el.get("ry") in zero):
            return True
        if name == "path" and not (el.get("d") or "").strip():
            return True
        if name in ("polyline", "polygon") and not (el.get("points") or "").strip():
            return True
        return name == "g" and len(el) == 0

    def ungroup_groups(self, root: ET.Element) -> None:
        """Dissolve groups whose attributes can be pushed down to their children."""
        referenced = set(references(root))
        changed = True
        while changed:
            changed = False
            parents = _parents(root)
            for group in [el for el in root.iter() if local(el.tag) == "g"]:
                parent = parents.get(group)
                if parent is None or local(parent.tag) in ("switch", "clipPath", "mask"):
                    continue
                # a referenced descendant would pick up the group's attributes in every <use>
                if any(el.get("id") in referenced for el in group.iter()) or not self._pushable(group):
                    continue
                children = list(group)
                for child in children:
                    for name, value in group.attrib.items():
                        if name == "transform":
                            child.set("transform", f"{value} {child.get('transform', '')}".strip())
                        elif name not in child.attrib:
                            child.set(name, value)
                index = list(parent).index(group)
                parent.remove(group)
                for offset, child in enumerate(children):
                    parent.insert(index + offset, child)
                changed = True
                break

    @staticmethod
    def _pushable(group: ET.Element) -> bool:
        if any(local(child.tag) in NON_RENDERING for child in group):
            return False
        for name in group.attrib:
            if name in ("opacity", "filter", "clip-path", "mask", "style", "class", "id"):
                return False
            if name != "transform" and name not in DEFAULTS and name not in ("fill", "color", "font-family", "font-size"):
                return False
        return len(group) > 0 or not group.attrib

    def apply_translations(self, root: ET.Element) -> None:
        """Fold pure-translation transforms into shape coordinates."""
        parents = _parents(root)
        for el in root.iter():
            transform = el.get("transform")
            if not transform:
                continue
            # paint servers and clips are laid out in the element's own user space
            chain = [el, *_ancestors(el, parents)]
            if any(URL_REF_RE.search(v) for a in chain for v in a.attrib.values()):
                continue
            try:
                a, b, c, d, tx, ty = parse_transform(transform)
            except SvgError:
                continue
            if (a, b, c, d) != (1.0, 0.0, 0.0, 1.0):
                continue
            if self._translate(el, local(el.tag), tx, ty):
                del el.attrib["transform"]

    @staticmethod
    def _translate(el: ET.Element, name: str, tx: float, ty: float) -> bool:
        def shift(attrs: tuple[str, ...]) -> bool:
            values = [el.get(a, "0") for a in attrs]
            if any(not re.fullmatch(NUMBER, v.strip()) for v in values):
                return False
            for attr, value in zip(attrs, values):
                delta = tx if attr.startswith(("x", "cx")) else ty
                el.set(attr, _fmt(float(value) + delta))
            return True

        if name in ("rect", "image"):
            return shift(("x", "y"))
        if name in ("circle", "ellipse"):
            return shift(("cx", "cy"))
        if name == "line":
            return shift(("x1", "y1", "x2", "y2"))
        if name in ("polyline", "polygon"):
            nums = [float(n) for n in NUMBER_RE.findall(el.get("points", ""))]
            if len(nums) % 2:
                return False
            el.set("points", " ".join(
                _fmt(v + (tx if i % 2 == 0 else ty)) for i, v in enumerate(nums)
            ))
            return True
        if name == "path":
            moved = translate_path(el.get("d", ""), tx, ty)
            if moved is None:
                return False
            el.set("d", moved)
            return True
        return False

    def merge_duplicate_gradients(self, root: ET.Element) -> None:
        """Point references at the first of several identical gradients and drop the rest."""
        seen: dict[tuple, str] = {}
        renames: dict[str, str] = {}
        parents = _parents(root)
        for el in list(root.iter()):
            if local(el.tag) not in ("linearGradient", "radialGradient") or not el.get("id"):
                continue
            key = (
                el.tag,
                tuple(sorted((k, v) for k, v in el.attrib.items() if k != "id")),
                tuple((c.tag, tuple(sorted(c.attrib.items()))) for c in el),
            )
            if key in seen:
                renames[el.get("id")] = seen[key]
                parents[el].remove(el)
            else:
                seen[key] = el.get("id")
        if renames:
            rename_references(root, renames)

    def remove_default_attributes(self, el: ET.Element, inherited: dict[str, Optional[str]]) -> None:
        for name, default in DEFAULTS.items():
            if el.get(name) != default:
                continue
            if name in NON_INHERITED or inherited.get(name, default) == default:
                del el.attrib[name]
        for name in ZERO_DEFAULTS.get(local(el.tag), ()):
            if el.get(name) in ("0", "0.0"):
                del el.attrib[name]
        passed = dict(inherited)
        if el.get("class"):
            # stylesheet values are unknown here; treat every inherited property as set
            passed.update((k, None) for k in DEFAULTS if k not in NON_INHERITED)
        declared = dict(el.attrib)
        declared.update(style_declarations(el.get("style", "")))
        passed.update((k, v) for k, v in declared.items() if k in DEFAULTS and k not in NON_INHERITED)
        for child in el:
            self.remove_default_attributes(child, passed)

    def remove_unreferenced_ids(self, root: ET.Element) -> None:
        referenced = references(root)
        for el in root.iter():
            if el.get("id") and el.get("id") not in referenced:
                del el.attrib["id"]

    def remove_unused_defs(self, root: ET.Element) -> None:
        """Drop definitions nothing refers to, repeating until the set is stable."""
        removed = True
        while removed:
            removed = False
            referenced = references(root)
            for defs in [el for el in root.iter() if local(el.tag) == "defs"]:
                for child in list(defs):
                    if child.get("id") not in referenced and local(child.tag) != "style":
                        defs.remove(child)
                        removed = True

    def ungroup_defs(self, root: ET.Element) -> None:
        """Remove empty <defs> and unwrap those holding only reference-only elements."""
        parents = _parents(root)
        for defs in [el for el in root.iter() if local(el.tag) == "defs"]:
            parent = parents.get(defs)
            if parent is None or defs.attrib:
                continue
            if not all(local(child.tag) in REFERENCE_ONLY for child in defs):
                continue
            index = list(parent).index(defs)
            parent.remove(defs)
            for offset, child in enumerate(list(defs)):
                parent.insert(index + offset, child)

    def round_precision(self, root: ET.Element) -> None:
        for el in root.iter():
            for name in NUMERIC_ATTRS.intersection(el.attrib):
                el.set(name, round_numbers(el.get(name), self.precision))


def rename_references(root: ET.Element, mapping: dict[str, str]) -> None:
    """Rewrite href="#id" and url(#id) references through mapping."""
    def url(m: re.Match) -> str:
        return f"url(#{mapping.get(m.group(1), m.group(1))})"

    for el in root.iter():
        for name, value in list(el.attrib.items()):
            if _is_href(name) and value.startswith("#") and value[1:] in mapping:
                el.set(name, "#" + mapping[value[1:]])
            elif "url(" in value:
                el.set(name, URL_REF_RE.sub(url, value))
        if local(el.tag) == "style" and el.text:
            el.text = URL_REF_RE.sub(url, el.text)


def prefix_ids(root: ET.Element, prefix: str) -> None:
    """Prefix every id (and every reference to it) so documents can share a page."""
    mapping = {}
    for el in root.iter():
        if el.get("id"):
            mapping[el.get("id")] = f"{prefix}-{el.get('id')}"
            el.set("id", mapping[el.get("id")])
    rename_references(root, mapping)


def make_accessible(root: ET.Element, alt: str) -> None:
    """Mark the document as an image and give it a <title> carrying the alt text."""
    if local(root.tag) != "svg":
        raise SvgError(f"root element is `{local(root.tag)}`, not `svg`")
    root.set("role", "img")
    title = ET.Element(qualified(root.tag, "title"))
    title.text = alt
    root.insert(0, title)


def inline_svg(source: str, alt: str, precision: int = 3, name: str = "") -> str:
    """Return markup for inlining an SVG: cleaned, titled and id-prefixed when possible.

    Unparseable sources are returned as-is; documents the cleaner rejects are
    returned parsed but unoptimized.
    """
    try:
        root = parse_svg(source)
    except ET.ParseError as e:
        logger.warning("svg optimization failed for `%s`: %s", name, e)
        return source
    unoptimized = serialize(root)

    try:
        SvgCleaner(precision).clean(root)
        make_accessible(root, alt)
    except ValueError as e:
        logger.warning("svg optimization failed for `%s`: %s", name, e)
        return unoptimized

    prefix = short_digest(serialize(root).encode("utf-8"), 4)
    prefix_ids(root, prefix)
    return serialize(root)
