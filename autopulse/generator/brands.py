"""Brand detection and grouping for raw items.

Items are assigned to a canonical brand by matching brand names and aliases
(word-boundary, case-insensitive for Latin script; plain substring for CJK).
A title match wins over anything found in the body. Unmatched items land in
the "Other" group.

A separate filter drops items that belong to a neighbouring domain
(motorcycles) before grouping. An item is only dropped when at least two
distinct excluded-domain terms appear and they outnumber the car brands it
mentions, so a single stray token never removes a car story.
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Union

import yaml

from autopulse.core.logging import get_logger
from autopulse.core.types import RawItem

logger = get_logger(__name__)

OTHER_BRAND = "Other"
BODY_SCAN_CHARS = 500
MIN_EXCLUDED_HITS = 2

_CJK_PATTERN = re.compile(r'[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]')

# (canonical name, aliases), most prominent first
DEFAULT_BRANDS: List[Tuple[str, List[str]]] = [
    # US
    ("Tesla", ["特斯拉"]),
    ("Ford", ["福特"]),
    ("Chevrolet", ["Chevy", "雪佛蘭"]),
    ("GMC", []),
    ("Cadillac", ["凱迪拉克"]),
    ("Jeep", []),
    ("Dodge", []),
    ("Lincoln", []),
    ("Buick", ["別克"]),
    ("Chrysler", []),
    ("Rivian", []),
    ("Lucid", []),
    # Germany
    ("Mercedes-Benz", ["Mercedes", "Benz", "奔驰", "奔馳", "賓士"]),
    ("BMW", ["寶馬"]),
    ("Audi", ["奧迪"]),
    ("Volkswagen", ["VW", "大眾", "福斯"]),
    ("Porsche", ["保時捷"]),
    ("Opel", []),
    # Japan
    ("Toyota", ["豐田"]),
    ("Honda", ["本田"]),
    ("Nissan", ["日產"]),
    ("Mazda", ["馬自達"]),
    ("Subaru", ["速霸陸"]),
    ("Mitsubishi", ["三菱"]),
    ("Suzuki", []),
    ("Lexus", ["凌志"]),
    ("Infiniti", []),
    ("Acura", []),
    # Korea
    ("Hyundai", ["現代汽車"]),
    ("Kia", ["起亞"]),
    ("Genesis", []),
    # China
    ("BYD", ["比亞迪", "比亚迪"]),
    ("NIO", ["蔚來", "蔚来"]),
    ("XPeng", ["Xiaopeng", "小鵬", "小鹏"]),
    ("Li Auto", ["理想汽車", "理想汽车"]),
    ("Geely", ["吉利"]),
    ("Great Wall", []),
    ("Chery", []),
    ("GAC", []),
    ("SAIC", []),
    ("Hongqi", []),
    ("Lynk & Co", []),
    ("Zeekr", ["極氪"]),
    ("Leapmotor", []),
    ("Xiaomi", ["小米汽車"]),
    # Rest of Europe
    ("Volvo", ["富豪"]),
    ("Polestar", []),
    ("Ferrari", ["法拉利"]),
    ("Lamborghini", ["藍寶堅尼"]),
    ("Maserati", []),
    ("Alfa Romeo", []),
    ("Fiat", []),
    ("Peugeot", []),
    ("Renault", []),
    ("Citroën", ["Citroen"]),
    ("Skoda", ["Škoda"]),
    # UK
    ("Rolls-Royce", []),
    ("Bentley", []),
    ("Jaguar", []),
    ("Land Rover", ["Range Rover"]),
    ("Aston Martin", []),
    ("McLaren", []),
    ("Lotus", []),
    ("Mini", []),
    ("MG", []),
]

DEFAULT_EXCLUDED_TERMS: List[str] = [
    # Motorcycle-only makers
    "Ducati", "Harley-Davidson", "Kawasaki", "KTM",
    "Aprilia", "MV Agusta", "Royal Enfield", "Husqvarna", "Vespa", "Gogoro",
    "Kymco", "SYM",
    # Vocabulary
    "motorcycle", "motorcycles", "motorbike", "motorbikes", "superbike",
    "scooter", "scooters", "dirt bike", "sportbike",
    "機車", "摩托車", "摩托车", "重機", "速克達",
]


def compile_term(term: str) -> Pattern:
    """Compile a brand or keyword into a matcher."""
    if _CJK_PATTERN.search(term):
        # CJK text has no word boundaries
        return re.compile(re.escape(term))
    return re.compile(r'(?<![A-Za-z0-9])' + re.escape(term) + r'(?![A-Za-z0-9])', re.IGNORECASE)


@dataclass
class BrandEntry:
    """A canonical brand with its aliases."""
    name: str
    aliases: List[str] = field(default_factory=list)

    def __post_init__(self):
        self._patterns = [compile_term(term) for term in [self.name, *self.aliases]]

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._patterns)


class BrandCatalog:
    """Curated brand list plus the excluded-domain vocabulary."""

    def __init__(
        self,
        brands: Sequence[BrandEntry],
        excluded_terms: Sequence[str] = (),
        body_scan_chars: int = BODY_SCAN_CHARS,
        min_excluded_hits: int = MIN_EXCLUDED_HITS
    ):
        self.brands = list(brands)
        self.excluded_terms = list(excluded_terms)
        self.body_scan_chars = body_scan_chars
        self.min_excluded_hits = min_excluded_hits
        self._excluded_patterns = [compile_term(term) for term in self.excluded_terms]
        self._by_name = {entry.name.lower(): entry.name for entry in self.brands}

    @classmethod
    def default(cls) -> "BrandCatalog":
        return cls(
            [BrandEntry(name, list(aliases)) for name, aliases in DEFAULT_BRANDS],
            DEFAULT_EXCLUDED_TERMS,
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "BrandCatalog":
        """
        Load a catalog from YAML.

        Expected layout::

            brands:
              - name: Tesla
                aliases: [特斯拉]
            excluded_terms: [motorcycle, scooter]
            min_excluded_hits: 2
        """
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        raw_brands = data.get('brands') or []
        if not raw_brands:
            raise ValueError(f"Brand catalog {path} defines no brands")

        brands = []
        for record in raw_brands:
            if isinstance(record, str):
                brands.append(BrandEntry(record))
            elif isinstance(record, dict) and record.get('name'):
                brands.append(BrandEntry(record['name'], list(record.get('aliases') or [])))
            else:
                raise ValueError(f"Invalid brand record in {path}: {record!r}")

        catalog = cls(
            brands,
            data.get('excluded_terms') or [],
            body_scan_chars=int(data.get('body_scan_chars', BODY_SCAN_CHARS)),
            min_excluded_hits=int(data.get('min_excluded_hits', MIN_EXCLUDED_HITS)),
        )
        logger.info(f"Loaded {len(brands)} brands from {path}")
        return catalog

    def canonical(self, name: Optional[str]) -> Optional[str]:
        """Canonical spelling of a known brand name, else None."""
        if not name:
            return None
        return self._by_name.get(name.strip().lower())

    def extract_brands(self, text: str) -> List[str]:
        """All catalog brands mentioned in ``text``, in catalog order."""
        if not text:
            return []
        return [entry.name for entry in self.brands if entry.matches(text)]

    def extract_primary_brand(self, title: str, content: str = "", hint: Optional[str] = None) -> Optional[str]:
        """
        Primary brand of an article.

        Title mentions win, then a recognised collector hint, then the
        opening of the body.
        """
        title_brands = self.extract_brands(title)
        if title_brands:
            return title_brands[0]

        hinted = self.canonical(hint)
        if hinted:
            return hinted

        body_brands = self.extract_brands((content or "")[:self.body_scan_chars])
        if body_brands:
            return body_brands[0]

        return None

    def excluded_hits(self, text: str) -> int:
        """Number of distinct excluded-domain terms present in ``text``."""
        if not text:
            return 0
        return sum(1 for pattern in self._excluded_patterns if pattern.search(text))

    def is_out_of_domain(self, item: RawItem) -> bool:
        text = f"{item.title}\n{item.content}"
        hits = self.excluded_hits(text)
        if hits < self.min_excluded_hits:
            return False
        return hits > len(self.extract_brands(text))


def filter_out_of_domain(items: Iterable[RawItem], catalog: BrandCatalog) -> List[RawItem]:
    """Drop items dominated by the excluded domain's vocabulary."""
    kept = []
    dropped = 0
    for item in items:
        if catalog.is_out_of_domain(item):
            dropped += 1
            logger.debug(f"Dropping out-of-domain item {item.id}: {item.title[:60]}")
        else:
            kept.append(item)

    if dropped:
        logger.info(f"Domain filter removed {dropped} items, kept {len(kept)}")
    return kept


def group_by_brand(items: Iterable[RawItem], catalog: BrandCatalog) -> Dict[str, List[RawItem]]:
    """
    Partition items by primary brand.

    Returns:
        Ordered mapping of brand -> items, in first-seen order, with
        unmatched items under ``OTHER_BRAND``
    """
    groups: Dict[str, List[RawItem]] = OrderedDict()
    for item in items:
        brand = catalog.extract_primary_brand(item.title, item.content, item.brand_hint) or OTHER_BRAND
        groups.setdefault(brand, []).append(item)
    return groups
