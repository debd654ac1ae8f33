"""Atom feed and entry models used by GData services.

Only the common Atom constructs are modelled (links, categories, people,
text constructs) plus the OpenSearch paging counters and the GData etag.
Elements from other namespaces are kept on ``extensions`` as raw
ElementTree elements so service-specific code can read them.

Example:
    >>> feed = parse_feed(response_bytes, uri)
    >>> for entry in feed.entries:
    ...     print(entry.title.text, entry.edit_uri)
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime

from gdata_client.exceptions import GDataParseError

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
APP_NS = "http://www.w3.org/2007/app"
GDATA_NS = "http://schemas.google.com/g/2005"
OPENSEARCH_NS = "http://a9.com/-/spec/opensearch/1.1/"

ET.register_namespace("", ATOM_NS)
ET.register_namespace("app", APP_NS)
ET.register_namespace("gd", GDATA_NS)
ET.register_namespace("openSearch", OPENSEARCH_NS)

# Link relations
REL_SELF = "self"
REL_EDIT = "edit"
REL_NEXT = "next"
REL_PREVIOUS = "previous"
REL_ALTERNATE = "alternate"
REL_FEED = "http://schemas.google.com/g/2005#feed"
REL_POST = "http://schemas.google.com/g/2005#post"
REL_BATCH = "http://schemas.google.com/g/2005#batch"


def _atom(tag: str) -> str:
    return f"{{{ATOM_NS}}}{tag}"


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable Atom date: {value!r}")
        return None


def _format_datetime(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass
class AtomPerson:
    """An atom:author or atom:contributor."""

    name: str | None = None
    email: str | None = None
    uri: str | None = None

    @classmethod
    def from_element(cls, element: ET.Element) -> AtomPerson:
        return cls(
            name=element.findtext(_atom("name")),
            email=element.findtext(_atom("email")),
            uri=element.findtext(_atom("uri")),
        )

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(_atom(tag))
        for name in ("name", "email", "uri"):
            value = getattr(self, name)
            if value is not None:
                ET.SubElement(element, _atom(name)).text = value
        return element


@dataclass
class AtomLink:
    """An atom:link."""

    href: str
    rel: str = REL_ALTERNATE
    type: str | None = None
    title: str | None = None
    length: int | None = None

    @classmethod
    def from_element(cls, element: ET.Element) -> AtomLink:
        length = element.get("length")
        return cls(
            href=element.get("href", ""),
            rel=element.get("rel", REL_ALTERNATE),
            type=element.get("type"),
            title=element.get("title"),
            length=int(length) if length and length.isdigit() else None,
        )

    def to_element(self) -> ET.Element:
        element = ET.Element(_atom("link"), {"rel": self.rel, "href": self.href})
        if self.type:
            element.set("type", self.type)
        if self.title:
            element.set("title", self.title)
        if self.length is not None:
            element.set("length", str(self.length))
        return element


@dataclass
class AtomCategory:
    """An atom:category."""

    term: str
    scheme: str | None = None
    label: str | None = None

    @classmethod
    def from_element(cls, element: ET.Element) -> AtomCategory:
        return cls(
            term=element.get("term", ""),
            scheme=element.get("scheme"),
            label=element.get("label"),
        )

    def to_element(self) -> ET.Element:
        element = ET.Element(_atom("category"), {"term": self.term})
        if self.scheme:
            element.set("scheme", self.scheme)
        if self.label:
            element.set("label", self.label)
        return element


@dataclass
class AtomText:
    """An Atom text construct (title, summary, content, rights, subtitle)."""

    text: str = ""
    type: str = "text"
    src: str | None = None

    @classmethod
    def from_element(cls, element: ET.Element | None) -> AtomText | None:
        if element is None:
            return None
        text_type = element.get("type", "text")
        if text_type == "xhtml":
            text = "".join(ET.tostring(child, encoding="unicode") for child in element)
        else:
            text = element.text or ""
        return cls(text=text, type=text_type, src=element.get("src"))

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(_atom(tag), {"type": self.type})
        if self.src:
            element.set("src", self.src)
        else:
            element.text = self.text
        return element


class _LinkMixin:
    links: list[AtomLink]

    def find_link(self, rel: str) -> AtomLink | None:
        """Get the first link with the given relation."""
        for link in self.links:
            if link.rel == rel:
                return link
        return None

    def _href(self, rel: str) -> str | None:
        link = self.find_link(rel)
        return link.href if link else None

    @property
    def self_uri(self) -> str | None:
        return self._href(REL_SELF)

    @property
    def edit_uri(self) -> str | None:
        return self._href(REL_EDIT)


@dataclass
class AtomEntry(_LinkMixin):
    """An atom:entry."""

    id: str | None = None
    title: AtomText | None = None
    updated: datetime | None = None
    published: datetime | None = None
    edited: datetime | None = None
    summary: AtomText | None = None
    content: AtomText | None = None
    rights: AtomText | None = None
    authors: list[AtomPerson] = field(default_factory=list)
    contributors: list[AtomPerson] = field(default_factory=list)
    links: list[AtomLink] = field(default_factory=list)
    categories: list[AtomCategory] = field(default_factory=list)
    etag: str | None = None
    extensions: list[ET.Element] = field(default_factory=list)

    @classmethod
    def from_element(cls, element: ET.Element) -> AtomEntry:
        entry = cls(etag=element.get(f"{{{GDATA_NS}}}etag"))
        for child in element:
            tag = child.tag
            if tag == _atom("id"):
                entry.id = (child.text or "").strip()
            elif tag == _atom("title"):
                entry.title = AtomText.from_element(child)
            elif tag == _atom("updated"):
                entry.updated = _parse_datetime(child.text)
            elif tag == _atom("published"):
                entry.published = _parse_datetime(child.text)
            elif tag == f"{{{APP_NS}}}edited":
                entry.edited = _parse_datetime(child.text)
            elif tag == _atom("summary"):
                entry.summary = AtomText.from_element(child)
            elif tag == _atom("content"):
                entry.content = AtomText.from_element(child)
            elif tag == _atom("rights"):
                entry.rights = AtomText.from_element(child)
            elif tag == _atom("author"):
                entry.authors.append(AtomPerson.from_element(child))
            elif tag == _atom("contributor"):
                entry.contributors.append(AtomPerson.from_element(child))
            elif tag == _atom("link"):
                entry.links.append(AtomLink.from_element(child))
            elif tag == _atom("category"):
                entry.categories.append(AtomCategory.from_element(child))
            else:
                entry.extensions.append(child)
        return entry

    def to_element(self) -> ET.Element:
        element = ET.Element(_atom("entry"))
        if self.etag:
            element.set(f"{{{GDATA_NS}}}etag", self.etag)
        if self.id:
            ET.SubElement(element, _atom("id")).text = self.id
        if self.title is not None:
            element.append(self.title.to_element("title"))
        if self.updated is not None:
            ET.SubElement(element, _atom("updated")).text = _format_datetime(self.updated)
        if self.published is not None:
            ET.SubElement(element, _atom("published")).text = _format_datetime(self.published)
        for person in self.authors:
            element.append(person.to_element("author"))
        for person in self.contributors:
            element.append(person.to_element("contributor"))
        for category in self.categories:
            element.append(category.to_element())
        for link in self.links:
            element.append(link.to_element())
        if self.summary is not None:
            element.append(self.summary.to_element("summary"))
        if self.content is not None:
            element.append(self.content.to_element("content"))
        if self.rights is not None:
            element.append(self.rights.to_element("rights"))
        element.extend(self.extensions)
        return element

    def to_xml(self) -> bytes:
        """Serialize the entry for POST/PUT."""
        return ET.tostring(self.to_element(), encoding="utf-8", xml_declaration=True)


@dataclass
class AtomFeed(_LinkMixin):
    """An atom:feed with its entries and OpenSearch paging counters."""

    id: str | None = None
    title: AtomText | None = None
    subtitle: AtomText | None = None
    updated: datetime | None = None
    generator: str | None = None
    authors: list[AtomPerson] = field(default_factory=list)
    links: list[AtomLink] = field(default_factory=list)
    categories: list[AtomCategory] = field(default_factory=list)
    entries: list[AtomEntry] = field(default_factory=list)
    total_results: int | None = None
    start_index: int | None = None
    items_per_page: int | None = None
    etag: str | None = None
    uri: str | None = None
    extensions: list[ET.Element] = field(default_factory=list)

    @property
    def next_uri(self) -> str | None:
        """URI of the next page, None on the last page."""
        return self._href(REL_NEXT)

    @property
    def post_uri(self) -> str | None:
        return self._href(REL_POST)

    @classmethod
    def from_element(cls, element: ET.Element, uri: str | None = None) -> AtomFeed:
        feed = cls(etag=element.get(f"{{{GDATA_NS}}}etag"), uri=uri)
        for child in element:
            tag = child.tag
            if tag == _atom("entry"):
                feed.entries.append(AtomEntry.from_element(child))
            elif tag == _atom("id"):
                feed.id = (child.text or "").strip()
            elif tag == _atom("title"):
                feed.title = AtomText.from_element(child)
            elif tag == _atom("subtitle"):
                feed.subtitle = AtomText.from_element(child)
            elif tag == _atom("updated"):
                feed.updated = _parse_datetime(child.text)
            elif tag == _atom("generator"):
                feed.generator = (child.text or "").strip()
            elif tag == _atom("author"):
                feed.authors.append(AtomPerson.from_element(child))
            elif tag == _atom("link"):
                feed.links.append(AtomLink.from_element(child))
            elif tag == _atom("category"):
                feed.categories.append(AtomCategory.from_element(child))
            elif tag == f"{{{OPENSEARCH_NS}}}totalResults":
                feed.total_results = _parse_int(child.text)
            elif tag == f"{{{OPENSEARCH_NS}}}startIndex":
                feed.start_index = _parse_int(child.text)
            elif tag == f"{{{OPENSEARCH_NS}}}itemsPerPage":
                feed.items_per_page = _parse_int(child.text)
            else:
                feed.extensions.append(child)
        return feed


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _parse_root(data: bytes | str, uri: str | None) -> ET.Element:
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise GDataParseError(f"Invalid XML from {uri or 'response'}: {e}") from e


def parse_feed(data: bytes | str, uri: str | None = None) -> AtomFeed:
    """Parse an atom:feed document.

    Raises:
        GDataParseError: If the data is not XML or not a feed.
    """
    root = _parse_root(data, uri)
    if root.tag != _atom("feed"):
        raise GDataParseError(f"Expected atom:feed from {uri or 'response'}, got {root.tag}")
    return AtomFeed.from_element(root, uri)


def parse_entry(data: bytes | str, uri: str | None = None) -> AtomEntry:
    """Parse an atom:entry document.

    Raises:
        GDataParseError: If the data is not XML or not an entry.
    """
    root = _parse_root(data, uri)
    if root.tag != _atom("entry"):
        raise GDataParseError(f"Expected atom:entry from {uri or 'response'}, got {root.tag}")
    return AtomEntry.from_element(root)


def parse_document(data: bytes | str, uri: str | None = None) -> AtomFeed | AtomEntry:
    """Parse either a feed or an entry, depending on the root element."""
    root = _parse_root(data, uri)
    if root.tag == _atom("feed"):
        return AtomFeed.from_element(root, uri)
    if root.tag == _atom("entry"):
        return AtomEntry.from_element(root)
    raise GDataParseError(f"Expected an Atom feed or entry from {uri or 'response'}, got {root.tag}")
