"""
Bucket derivation.

Maps a voter profile to the three coarse aggregation dimensions (geo, party,
demo). Derivation is pure and total: missing or unrecognised attributes map to
the ``unknown`` bucket and nothing here raises.

The ``parse_*`` helpers are the strict counterparts used for explicit,
caller-supplied buckets, where an unrecognised value is an input error.
"""

from datetime import date, datetime, timezone
from typing import Optional

from models.documents import Buckets, DemoBucket, GeoBucket, PartyBucket, Region, VoterProfile

# ============================================================================
# Geography
# ============================================================================

STATE_NAMES: dict[str, GeoBucket] = {
    "alabama": GeoBucket.AL,
    "alaska": GeoBucket.AK,
    "arizona": GeoBucket.AZ,
    "arkansas": GeoBucket.AR,
    "california": GeoBucket.CA,
    "colorado": GeoBucket.CO,
    "connecticut": GeoBucket.CT,
    "delaware": GeoBucket.DE,
    "district of columbia": GeoBucket.DC,
    "washington dc": GeoBucket.DC,
    "washington d.c.": GeoBucket.DC,
    "florida": GeoBucket.FL,
    "georgia": GeoBucket.GA,
    "hawaii": GeoBucket.HI,
    "idaho": GeoBucket.ID,
    "illinois": GeoBucket.IL,
    "indiana": GeoBucket.IN,
    "iowa": GeoBucket.IA,
    "kansas": GeoBucket.KS,
    "kentucky": GeoBucket.KY,
    "louisiana": GeoBucket.LA,
    "maine": GeoBucket.ME,
    "maryland": GeoBucket.MD,
    "massachusetts": GeoBucket.MA,
    "michigan": GeoBucket.MI,
    "minnesota": GeoBucket.MN,
    "mississippi": GeoBucket.MS,
    "missouri": GeoBucket.MO,
    "montana": GeoBucket.MT,
    "nebraska": GeoBucket.NE,
    "nevada": GeoBucket.NV,
    "new hampshire": GeoBucket.NH,
    "new jersey": GeoBucket.NJ,
    "new mexico": GeoBucket.NM,
    "new york": GeoBucket.NY,
    "north carolina": GeoBucket.NC,
    "north dakota": GeoBucket.ND,
    "ohio": GeoBucket.OH,
    "oklahoma": GeoBucket.OK,
    "oregon": GeoBucket.OR,
    "pennsylvania": GeoBucket.PA,
    "rhode island": GeoBucket.RI,
    "south carolina": GeoBucket.SC,
    "south dakota": GeoBucket.SD,
    "tennessee": GeoBucket.TN,
    "texas": GeoBucket.TX,
    "utah": GeoBucket.UT,
    "vermont": GeoBucket.VT,
    "virginia": GeoBucket.VA,
    "washington": GeoBucket.WA,
    "west virginia": GeoBucket.WV,
    "wisconsin": GeoBucket.WI,
    "wyoming": GeoBucket.WY,
}

# First three ZIP digits (inclusive ranges) -> state. Territories and
# military prefixes are deliberately absent and derive to unknown.
ZIP3_RANGES: list[tuple[int, int, GeoBucket]] = [
    (10, 27, GeoBucket.MA),
    (28, 29, GeoBucket.RI),
    (30, 38, GeoBucket.NH),
    (39, 49, GeoBucket.ME),
    (50, 59, GeoBucket.VT),
    (60, 69, GeoBucket.CT),
    (70, 89, GeoBucket.NJ),
    (100, 149, GeoBucket.NY),
    (150, 196, GeoBucket.PA),
    (197, 199, GeoBucket.DE),
    (200, 200, GeoBucket.DC),
    (201, 201, GeoBucket.VA),
    (202, 205, GeoBucket.DC),
    (206, 219, GeoBucket.MD),
    (220, 246, GeoBucket.VA),
    (247, 268, GeoBucket.WV),
    (270, 289, GeoBucket.NC),
    (290, 299, GeoBucket.SC),
    (300, 319, GeoBucket.GA),
    (320, 349, GeoBucket.FL),
    (350, 369, GeoBucket.AL),
    (370, 385, GeoBucket.TN),
    (386, 397, GeoBucket.MS),
    (398, 399, GeoBucket.GA),
    (400, 427, GeoBucket.KY),
    (430, 459, GeoBucket.OH),
    (460, 479, GeoBucket.IN),
    (480, 499, GeoBucket.MI),
    (500, 528, GeoBucket.IA),
    (530, 549, GeoBucket.WI),
    (550, 567, GeoBucket.MN),
    (569, 569, GeoBucket.DC),
    (570, 577, GeoBucket.SD),
    (580, 588, GeoBucket.ND),
    (590, 599, GeoBucket.MT),
    (600, 629, GeoBucket.IL),
    (630, 658, GeoBucket.MO),
    (660, 679, GeoBucket.KS),
    (680, 693, GeoBucket.NE),
    (700, 714, GeoBucket.LA),
    (716, 729, GeoBucket.AR),
    (730, 749, GeoBucket.OK),
    (750, 799, GeoBucket.TX),
    (800, 816, GeoBucket.CO),
    (820, 831, GeoBucket.WY),
    (832, 838, GeoBucket.ID),
    (840, 847, GeoBucket.UT),
    (850, 865, GeoBucket.AZ),
    (870, 884, GeoBucket.NM),
    (885, 885, GeoBucket.TX),
    (889, 898, GeoBucket.NV),
    (900, 961, GeoBucket.CA),
    (967, 968, GeoBucket.HI),
    (970, 979, GeoBucket.OR),
    (980, 994, GeoBucket.WA),
    (995, 999, GeoBucket.AK),
]

REGION_STATES: dict[Region, frozenset[str]] = {
    Region.NORTHEAST: frozenset({"CT", "ME", "MA", "NH", "RI", "VT", "NJ", "NY", "PA"}),
    Region.MIDWEST: frozenset({"IL", "IN", "MI", "OH", "WI", "IA", "KS", "MN", "MO", "NE", "ND", "SD"}),
    Region.SOUTH: frozenset(
        {"DE", "DC", "FL", "GA", "MD", "NC", "SC", "VA", "WV", "AL", "KY", "MS", "TN", "AR", "LA", "OK", "TX"}
    ),
    Region.WEST: frozenset({"AZ", "CO", "ID", "MT", "NV", "NM", "UT", "WY", "AK", "CA", "HI", "OR", "WA"}),
}

_STATE_CODES = {member.value for member in GeoBucket if member is not GeoBucket.UNKNOWN}


def _state_from_text(value: str) -> Optional[GeoBucket]:
    text = value.strip()
    if text.upper() in _STATE_CODES:
        return GeoBucket(text.upper())
    return STATE_NAMES.get(text.lower())


def _state_from_zip(zip_code: str) -> Optional[GeoBucket]:
    digits = zip_code.strip()[:5]
    if len(digits) < 3 or not digits[:3].isdigit():
        return None
    prefix = int(digits[:3])
    for low, high, state in ZIP3_RANGES:
        if low <= prefix <= high:
            return state
    return None


def derive_geo_bucket(profile: VoterProfile) -> GeoBucket:
    """State code or name wins over ZIP code; anything else is unknown."""
    if profile.state:
        state = _state_from_text(profile.state)
        if state is not None:
            return state
    if profile.zip_code:
        state = _state_from_zip(profile.zip_code)
        if state is not None:
            return state
    return GeoBucket.UNKNOWN


def parse_geo(value: str) -> GeoBucket:
    """Strict geo parsing for explicit buckets (``ca``, ``California``, ``unknown``)."""
    if value.strip().lower() == GeoBucket.UNKNOWN.value:
        return GeoBucket.UNKNOWN
    state = _state_from_text(value)
    if state is None:
        raise ValueError(f"Unrecognised geo bucket: {value!r}")
    return state


def region_for_geo(geo: str) -> Region:
    for region, states in REGION_STATES.items():
        if geo in states:
            return region
    return Region.UNKNOWN


# ============================================================================
# Party
# ============================================================================

PARTY_ALIASES: dict[str, PartyBucket] = {
    "democrat": PartyBucket.DEMOCRAT,
    "democratic": PartyBucket.DEMOCRAT,
    "dem": PartyBucket.DEMOCRAT,
    "d": PartyBucket.DEMOCRAT,
    "republican": PartyBucket.REPUBLICAN,
    "rep": PartyBucket.REPUBLICAN,
    "gop": PartyBucket.REPUBLICAN,
    "r": PartyBucket.REPUBLICAN,
    "independent": PartyBucket.INDEPENDENT,
    "ind": PartyBucket.INDEPENDENT,
    "i": PartyBucket.INDEPENDENT,
    "other": PartyBucket.OTHER,
    "o": PartyBucket.OTHER,
    "unknown": PartyBucket.UNKNOWN,
    "u": PartyBucket.UNKNOWN,
}

# Substring fallbacks for free-text answers, checked in order
PARTY_KEYWORDS: list[tuple[str, PartyBucket]] = [
    ("democrat", PartyBucket.DEMOCRAT),
    ("republican", PartyBucket.REPUBLICAN),
    ("independent", PartyBucket.INDEPENDENT),
    ("other", PartyBucket.OTHER),
]

ALIGNMENT_KEYWORDS: list[tuple[str, PartyBucket]] = [
    ("liberal", PartyBucket.DEMOCRAT),
    ("progressive", PartyBucket.DEMOCRAT),
    ("left", PartyBucket.DEMOCRAT),
    ("conservative", PartyBucket.REPUBLICAN),
    ("right", PartyBucket.REPUBLICAN),
    ("moderate", PartyBucket.INDEPENDENT),
    ("centrist", PartyBucket.INDEPENDENT),
    ("independent", PartyBucket.INDEPENDENT),
]


def normalize_party_input(value: str) -> PartyBucket:
    """Map a party answer to a bucket, falling back to unknown."""
    text = value.strip().lower()
    if text in PARTY_ALIASES:
        return PARTY_ALIASES[text]
    for keyword, bucket in PARTY_KEYWORDS:
        if keyword in text:
            return bucket
    return PartyBucket.UNKNOWN


def derive_party_bucket(profile: VoterProfile) -> PartyBucket:
    """Party preference first, political alignment as a fallback."""
    if profile.party_preference:
        party = normalize_party_input(profile.party_preference)
        if party is not PartyBucket.UNKNOWN:
            return party

    if profile.political_alignment:
        alignment = profile.political_alignment.lower()
        for keyword, bucket in ALIGNMENT_KEYWORDS:
            if keyword in alignment:
                return bucket

    return PartyBucket.UNKNOWN


def parse_party(value: str) -> PartyBucket:
    """Strict party parsing for explicit buckets; only known aliases pass."""
    text = value.strip().lower()
    if text not in PARTY_ALIASES:
        raise ValueError(f"Unrecognised party bucket: {value!r}")
    return PARTY_ALIASES[text]


# ============================================================================
# Demographics
# ============================================================================

AGE_BANDS: list[tuple[int, int, DemoBucket]] = [
    (18, 24, DemoBucket.AGE_18_24),
    (25, 34, DemoBucket.AGE_25_34),
    (35, 44, DemoBucket.AGE_35_44),
    (45, 54, DemoBucket.AGE_45_54),
    (55, 64, DemoBucket.AGE_55_64),
    (65, 150, DemoBucket.AGE_65_PLUS),
]


def _age_on(birth_date: date, today: date) -> int:
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def derive_demo_bucket(profile: VoterProfile, today: Optional[date] = None) -> DemoBucket:
    """Age band from ``age`` or ``birth_date``; minors and gaps are unknown."""
    age: Optional[int] = None
    if profile.age is not None and profile.age > 0:
        age = profile.age
    elif profile.birth_date is not None:
        age = _age_on(profile.birth_date, today or datetime.now(timezone.utc).date())

    if age is None:
        return DemoBucket.UNKNOWN

    for low, high, band in AGE_BANDS:
        if low <= age <= high:
            return band
    return DemoBucket.UNKNOWN


def parse_demo(value: str) -> DemoBucket:
    """Strict demo parsing; accepts ``18-24`` and ``65+`` spellings."""
    text = value.strip().lower().replace("-", "_")
    if text == "65+":
        text = DemoBucket.AGE_65_PLUS.value
    try:
        return DemoBucket(text)
    except ValueError:
        raise ValueError(f"Unrecognised demo bucket: {value!r}") from None


# ============================================================================
# All buckets
# ============================================================================


def derive_buckets(profile: Optional[VoterProfile], today: Optional[date] = None) -> Buckets:
    """Derive every bucket for a voter; an absent profile is all unknown."""
    if profile is None:
        return Buckets()
    return Buckets(
        geo=derive_geo_bucket(profile),
        party=derive_party_bucket(profile),
        demo=derive_demo_bucket(profile, today),
    )


def override_buckets(
    derived: Buckets,
    geo: Optional[GeoBucket] = None,
    party: Optional[PartyBucket] = None,
    demo: Optional[DemoBucket] = None,
) -> Buckets:
    """Replace derived buckets with explicitly supplied ones, field by field."""
    return Buckets(
        geo=geo or derived.geo,
        party=party or derived.party,
        demo=demo or derived.demo,
    )
