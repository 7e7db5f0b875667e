from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

ARCHIVE_EXTENSION = "zip"


@dataclass
class FileInfo:
    unpackedsize: str
    packedsize: str
    md5: str


@dataclass
class DataGroup:
    id: int
    info: FileInfo


@dataclass
class Country:
    id: int
    name: str = ""
    data_groups: List[DataGroup] = field(default_factory=list)
    speech_recognition: Optional[FileInfo] = None


@dataclass
class Continent:
    countries: List[Country] = field(default_factory=list)


@dataclass
class SalesRegion:
    name: str
    country_ids: List[int] = field(default_factory=list)


@dataclass
class Catalog:
    continents: List[Continent]
    sales_region: SalesRegion


@dataclass(frozen=True)
class ExpectedFile:
    filename: str
    expected_size: int
    expected_digest: str
