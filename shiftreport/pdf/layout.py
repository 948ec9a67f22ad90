# shiftreport/pdf/layout.py
"""
Page layout model. A page is a flat tuple of positioned items; building it
does no drawing, so two layouts can be compared for equality.
Coordinates are PDF points with the origin at the bottom-left corner.
"""
from dataclasses import dataclass, field
from typing import Iterator, Tuple, Union


@dataclass(frozen=True)
class TextItem:
    x: float
    y: float
    text: str
    font: str = 'regular'       # 'regular' | 'bold'
    size: float = 9.5
    align: str = 'left'         # 'left' | 'center' | 'right'
    color: str = '#000000'


@dataclass(frozen=True)
class BoxItem:
    x: float
    y: float
    w: float
    h: float
    fill: str = ''              # hex color, '' = no fill
    width: float = 0.6


@dataclass(frozen=True)
class CheckItem:
    key: str
    x: float
    y: float
    size: float
    checked: bool


@dataclass(frozen=True)
class ParagraphItem:
    """Markup is already escaped; (x, y) is the top-left corner of the box."""
    key: str
    x: float
    y: float
    w: float
    h: float
    markup: str
    style: str = 'value'
    valign: str = 'top'         # 'top' | 'middle'


LayoutItem = Union[TextItem, BoxItem, CheckItem, ParagraphItem]


@dataclass(frozen=True)
class PageLayout:
    width: float
    height: float
    items: Tuple[LayoutItem, ...] = field(default_factory=tuple)

    def of_type(self, kind) -> Iterator:
        return (it for it in self.items if isinstance(it, kind))

    def checks(self) -> Tuple[CheckItem, ...]:
        return tuple(self.of_type(CheckItem))

    def checked_keys(self) -> Tuple[str, ...]:
        return tuple(c.key for c in self.checks() if c.checked)

    def paragraph(self, key: str) -> ParagraphItem:
        for p in self.of_type(ParagraphItem):
            if p.key == key:
                return p
        raise KeyError(key)

    def has_paragraph(self, key: str) -> bool:
        return any(p.key == key for p in self.of_type(ParagraphItem))

    def texts(self) -> Tuple[str, ...]:
        out = []
        for it in self.items:
            if isinstance(it, TextItem):
                out.append(it.text)
            elif isinstance(it, ParagraphItem):
                out.append(it.markup)
        return tuple(out)
