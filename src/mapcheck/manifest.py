from __future__ import annotations

import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .models import (
    ARCHIVE_EXTENSION,
    Catalog,
    Continent,
    Country,
    DataGroup,
    ExpectedFile,
    FileInfo,
    SalesRegion,
)

logger = logging.getLogger(__name__)

MAX_U64 = 2**64 - 1
_DIGITS = re.compile(r"[0-9]+")


class ManifestError(ValueError):
    pass


@dataclass
class Resolution:
    region_name: str
    countries: List[Country] = field(default_factory=list)
    missing_ids: List[int] = field(default_factory=list)

    @property
    def files(self) -> List[ExpectedFile]:
        files: List[ExpectedFile] = []
        seen: set[str] = set()
        for country in self.countries:
            for expected in expected_files(country):
                if expected.filename in seen:
                    raise ManifestError(f"duplicate archive name: {expected.filename}")
                seen.add(expected.filename)
                files.append(expected)
        return files

    @property
    def total_bytes(self) -> int:
        return sum(item.expected_size for item in self.files)


def load_catalog(path: str | Path) -> Catalog:
    manifest_path = Path(path)
    try:
        root = ET.fromstring(manifest_path.read_bytes())
    except OSError as exc:
        raise ManifestError(f"could not read {manifest_path}: {exc}") from exc
    except ET.ParseError as exc:
        raise ManifestError(f"could not parse {manifest_path}: {exc}") from exc

    drm_entry = root if root.tag == "drmEntry" else root.find("drmEntry")
    if drm_entry is None:
        raise ManifestError("manifest has no drmEntry element")
    map_catalog = _require(drm_entry, "mapCatalog")
    sales_region = _require(drm_entry, "salesRegion")

    continents = [
        Continent(countries=[_parse_country(node) for node in continent.findall("region")])
        for continent in map_catalog.findall("region")
    ]
    region = SalesRegion(
        name=_field(sales_region, "name") or "",
        country_ids=[
            _parse_int(_field(node, "id"), "salesRegion region id")
            for node in sales_region.findall("region")
        ],
    )
    return Catalog(continents=continents, sales_region=region)


def resolve(catalog: Catalog, *, strict: bool = False) -> Resolution:
    """Resolve the sales region against the map catalog.

    Countries come out in sales-region order. Each catalog entry is removed
    from the index once matched, so an id listed twice resolves only once.
    An id without catalog entry raises ManifestError in strict mode and is
    recorded in ``missing_ids`` (with a warning) otherwise.
    """
    index: Dict[int, Country] = {}
    for continent in catalog.continents:
        for country in continent.countries:
            if country.id in index:
                raise ManifestError(f"duplicate country id in map catalog: {country.id}")
            index[country.id] = country

    resolution = Resolution(region_name=catalog.sales_region.name)
    for country_id in catalog.sales_region.country_ids:
        country = index.pop(country_id, None)
        if country is None:
            if strict:
                raise ManifestError(f"no info found for country with id: {country_id}")
            logger.warning(
                "no info found for country with id %s, skipped in integrity checks",
                country_id,
            )
            resolution.missing_ids.append(country_id)
            continue
        resolution.countries.append(country)

    logger.info(
        json.dumps(
            {
                "event": "resolve_done",
                "region": resolution.region_name,
                "countries": len(resolution.countries),
                "missing_ids": resolution.missing_ids,
            },
            separators=(",", ":"),
        )
    )
    return resolution


def expected_files(country: Country) -> Iterator[ExpectedFile]:
    for group in country.data_groups:
        yield _expected(f"{country.id}_{group.id:02d}.{ARCHIVE_EXTENSION}", group.info)
    if country.speech_recognition is not None:
        yield _expected(
            f"{country.id}_speech_recognition.{ARCHIVE_EXTENSION}",
            country.speech_recognition,
        )


def parse_size(value: str, filename: str = "") -> int:
    text = str(value).strip()
    if not _DIGITS.fullmatch(text):
        raise ManifestError(f"invalid packed size {value!r} for {filename}")
    size = int(text)
    if size > MAX_U64:
        raise ManifestError(f"packed size out of range for {filename}: {value}")
    return size


def _expected(filename: str, info: FileInfo) -> ExpectedFile:
    return ExpectedFile(
        filename=filename,
        expected_size=parse_size(info.packedsize, filename),
        expected_digest=info.md5.strip().lower(),
    )


def _parse_country(node: ET.Element) -> Country:
    country_id = _parse_int(_field(node, "id"), "country id")
    groups = [
        DataGroup(id=_parse_int(_field(child, "id"), "dataGroup id"), info=_parse_info(child))
        for child in node.findall("dataGroup")
    ]
    speech_node = node.find("speechRecognition")
    return Country(
        id=country_id,
        name=_field(node, "name") or "",
        data_groups=groups,
        speech_recognition=_parse_info(speech_node) if speech_node is not None else None,
    )


def _parse_info(node: ET.Element) -> FileInfo:
    return FileInfo(
        unpackedsize=_field(node, "unpackedsize") or "",
        packedsize=_field(node, "packedsize") or "",
        md5=_field(node, "md5") or "",
    )


def _field(node: ET.Element, name: str) -> Optional[str]:
    # Fields may be encoded either as attributes or as child elements.
    value = node.get(name)
    if value is not None:
        return value
    child = node.find(name)
    if child is not None and child.text is not None:
        return child.text.strip()
    return None


def _parse_int(value: Optional[str], what: str) -> int:
    if value is None or not _DIGITS.fullmatch(value.strip()):
        raise ManifestError(f"invalid {what}: {value!r}")
    return int(value.strip())


def _require(node: ET.Element, name: str) -> ET.Element:
    child = node.find(name)
    if child is None:
        raise ManifestError(f"manifest has no {name} element")
    return child
