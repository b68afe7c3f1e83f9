from __future__ import annotations

import logging
import random
import string
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict

from collection_engine.collection_model import FieldSpec
from collection_engine.errors import runtime_error

logger = logging.getLogger("generators")


##----------------FUNCTIONAL----------------##
@dataclass
class GenContext:
    """
    Value-level context handed to every generator.
    - rng: the synthesizer's random stream
    - field_type: the descriptor type being generated
    """
    rng: random.Random
    field_type: str = ""


GeneratorFn = Callable[[Dict[str, Any], GenContext], Any]

REGISTRY: Dict[str, GeneratorFn] = {}

FALLBACK_FIELD_TYPE = "lorem.word"


def register(name: str):
    def deco(fn: GeneratorFn) -> GeneratorFn:
        if name in REGISTRY:
            raise KeyError(
                f"Generator '{name}' is already registered. Existing: {sorted(REGISTRY.keys())}"
            )
        REGISTRY[name] = fn
        return fn
    return deco


def get_generator(name: str) -> GeneratorFn:
    if name not in REGISTRY:
        raise KeyError(f"Unknown generator '{name}'. Registered: {sorted(REGISTRY.keys())}")
    return REGISTRY[name]


def _iso_utc(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _bounded_int(params: Dict[str, Any], *, generator_name: str, default_min: int, default_max: int, rng: random.Random) -> int:
    min_v = int(params.get("min", default_min))
    max_v = int(params.get("max", default_max))
    if max_v < min_v:
        raise ValueError(
            runtime_error(
                f"Generator '{generator_name}'",
                f"params.max ({max_v}) is less than params.min ({min_v})",
                "set params.max >= params.min",
            )
        )
    return rng.randint(min_v, max_v)


# --------- Small vocab lists ---------
FIRST_NAMES = ["Alex", "Sam", "Jordan", "Taylor", "Casey", "Morgan", "Riley", "Jamie", "Avery", "Quinn", "Harper"]
LAST_NAMES = ["Smith", "Nguyen", "Khan", "Brown", "Garcia", "Wilson", "Chen", "Patel", "Martin", "Okafor", "Silva"]
JOB_TITLES = ["Engineer", "Designer", "Product Manager", "Analyst", "Support Lead", "Data Scientist", "Accountant"]
CITIES = ["Lisbon", "Toronto", "Melbourne", "Osaka", "Nairobi", "Austin", "Berlin", "Santiago", "Dublin"]
STATES = ["California", "Ontario", "Victoria", "Bavaria", "Texas", "Queensland", "Oregon"]
COUNTRIES = ["Portugal", "Canada", "Australia", "Japan", "Kenya", "United States", "Germany", "Chile", "Ireland"]
STREET_NAMES = ["Main", "Oak", "Maple", "Cedar", "Elm", "High", "Station", "Park", "Church"]
STREET_SUFFIXES = ["St", "Ave", "Rd", "Lane", "Blvd", "Way"]
PRODUCT_ADJECTIVES = ["Ergonomic", "Rustic", "Sleek", "Compact", "Durable", "Smart", "Handmade"]
PRODUCT_MATERIALS = ["Steel", "Wooden", "Cotton", "Granite", "Plastic", "Bamboo", "Leather"]
PRODUCT_NOUNS = ["Chair", "Lamp", "Keyboard", "Backpack", "Bottle", "Desk", "Headphones", "Mug"]
DEPARTMENTS = ["Books", "Electronics", "Garden", "Home", "Outdoors", "Toys", "Sports", "Grocery"]
EMAIL_DOMAINS = ["example.com", "mail.test", "demo.local"]
LOREM_WORDS = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua enim minim veniam quis nostrud"
).split()


##----------------DATA TYPES----------------##
    ##----------------IDENTIFIERS----------------##
@register("uuid")
def gen_uuid(params: Dict[str, Any], ctx: GenContext) -> str:
    return str(uuid.UUID(int=ctx.rng.getrandbits(128), version=4))


@register("string")
def gen_string(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(LOREM_WORDS)


@register("number")
def gen_number(params: Dict[str, Any], ctx: GenContext) -> int:
    return _bounded_int(params, generator_name="number", default_min=1, default_max=1000, rng=ctx.rng)


@register("boolean")
def gen_boolean(params: Dict[str, Any], ctx: GenContext) -> bool:
    return ctx.rng.random() < float(params.get("true_rate", 0.5))


@register("choice")
def gen_choice(params: Dict[str, Any], ctx: GenContext) -> Any:
    values = params.get("values")
    if not isinstance(values, list) or len(values) == 0:
        raise ValueError(
            runtime_error(
                "Generator 'choice'",
                "params.values must be a non-empty list",
                "set params.values to the allowed values",
            )
        )
    return ctx.rng.choice(values)


    ##----------------DATETIME----------------##
@register("date")
def gen_date(params: Dict[str, Any], ctx: GenContext) -> str:
    """
    Returns a recent ISO 8601 UTC timestamp.
    params:
      - days: look-back window (default 30)
    """
    days = int(params.get("days", 30))
    if days < 0:
        raise ValueError(
            runtime_error("Generator 'date'", "params.days cannot be negative", "set params.days >= 0")
        )
    now = datetime.now(timezone.utc)
    return _iso_utc(now - timedelta(seconds=ctx.rng.randint(0, days * 24 * 3600)))


@register("calendar_date")
def gen_calendar_date(params: Dict[str, Any], ctx: GenContext) -> str:
    """
    Returns ISO date 'YYYY-MM-DD'
    params:
      - start: '2020-01-01'
      - end: '2026-12-31'
    """
    start = date.fromisoformat(params.get("start", "2020-01-01"))
    end = date.fromisoformat(params.get("end", "2026-12-31"))
    if end < start:
        raise ValueError(
            runtime_error(
                "Generator 'calendar_date'",
                "params.end is earlier than params.start",
                "set params.end >= params.start",
            )
        )
    return (start + timedelta(days=ctx.rng.randint(0, (end - start).days))).isoformat()


    ##----------------PERSON / INTERNET----------------##
@register("person.firstName")
def gen_first_name(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(FIRST_NAMES)


@register("person.lastName")
def gen_last_name(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(LAST_NAMES)


@register("person.fullName")
def gen_full_name(params: Dict[str, Any], ctx: GenContext) -> str:
    return f"{ctx.rng.choice(FIRST_NAMES)} {ctx.rng.choice(LAST_NAMES)}"


@register("person.jobTitle")
def gen_job_title(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(JOB_TITLES)


@register("internet.userName")
def gen_user_name(params: Dict[str, Any], ctx: GenContext) -> str:
    first = ctx.rng.choice(FIRST_NAMES).lower()
    return f"{first}{ctx.rng.randint(1, 999)}"


@register("email")
def gen_email(params: Dict[str, Any], ctx: GenContext) -> str:
    base = f"{ctx.rng.choice(FIRST_NAMES)}.{ctx.rng.choice(LAST_NAMES)}".lower()
    suffix = "".join(ctx.rng.choices(string.ascii_lowercase + string.digits, k=3))
    domain = params.get("domain") or ctx.rng.choice(EMAIL_DOMAINS)
    return f"{base}.{suffix}@{domain}"


@register("url")
def gen_url(params: Dict[str, Any], ctx: GenContext) -> str:
    return f"https://{ctx.rng.choice(LOREM_WORDS)}.{ctx.rng.choice(EMAIL_DOMAINS)}"


@register("phoneNumber")
def gen_phone_number(params: Dict[str, Any], ctx: GenContext) -> str:
    return f"+1-{ctx.rng.randint(200, 999)}-{ctx.rng.randint(200, 999)}-{ctx.rng.randint(0, 9999):04d}"


    ##----------------LOCATIONS----------------##
@register("location.street")
def gen_street(params: Dict[str, Any], ctx: GenContext) -> str:
    return f"{ctx.rng.randint(1, 9999)} {ctx.rng.choice(STREET_NAMES)} {ctx.rng.choice(STREET_SUFFIXES)}"


@register("location.city")
def gen_city(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(CITIES)


@register("location.state")
def gen_state(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(STATES)


@register("location.zipCode")
def gen_zip_code(params: Dict[str, Any], ctx: GenContext) -> str:
    return f"{ctx.rng.randint(0, 99999):05d}"


@register("location.country")
def gen_country(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(COUNTRIES)


@register("location.latitude")
def gen_latitude(params: Dict[str, Any], ctx: GenContext) -> float:
    return round(ctx.rng.uniform(-90.0, 90.0), 6)


@register("location.longitude")
def gen_longitude(params: Dict[str, Any], ctx: GenContext) -> float:
    return round(ctx.rng.uniform(-180.0, 180.0), 6)


    ##----------------COMMERCE----------------##
@register("commerce.productName")
def gen_product_name(params: Dict[str, Any], ctx: GenContext) -> str:
    return (
        f"{ctx.rng.choice(PRODUCT_ADJECTIVES)} {ctx.rng.choice(PRODUCT_MATERIALS)} "
        f"{ctx.rng.choice(PRODUCT_NOUNS)}"
    )


@register("commerce.department")
def gen_department(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(DEPARTMENTS)


@register("commerce.price")
def gen_price(params: Dict[str, Any], ctx: GenContext) -> float:
    min_v = float(params.get("min", 1.0))
    max_v = float(params.get("max", 1000.0))
    if max_v < min_v:
        raise ValueError(
            runtime_error(
                "Generator 'commerce.price'",
                f"params.max ({max_v}) is less than params.min ({min_v})",
                "set params.max >= params.min",
            )
        )
    return round(ctx.rng.uniform(min_v, max_v), 2)


    ##----------------LOREM----------------##
@register("lorem.word")
def gen_lorem_word(params: Dict[str, Any], ctx: GenContext) -> str:
    return ctx.rng.choice(LOREM_WORDS)


@register("lorem.sentence")
def gen_lorem_sentence(params: Dict[str, Any], ctx: GenContext) -> str:
    words = [ctx.rng.choice(LOREM_WORDS) for _ in range(ctx.rng.randint(5, 12))]
    return " ".join(words).capitalize() + "."


@register("lorem.paragraph")
def gen_lorem_paragraph(params: Dict[str, Any], ctx: GenContext) -> str:
    return " ".join(gen_lorem_sentence(params, ctx) for _ in range(ctx.rng.randint(3, 5)))


##----------------SYNTHESIZER----------------##
class GeneratorSynthesizer:
    """
    Default value synthesizer: walks a field descriptor and calls the
    registered generator for each primitive. Unknown field types fall back
    to a lorem word.
    """

    def __init__(self, seed: int | None = None) -> None:
        self.rng = random.Random(seed)

    def synthesize(self, spec: FieldSpec) -> Any:
        if spec.kind == "object":
            return {name: self.synthesize(child) for name, child in (spec.children or {}).items()}

        if spec.kind == "array":
            params = spec.params or {}
            n = self.rng.randint(int(params.get("min_items", 3)), int(params.get("max_items", 5)))
            return [self.synthesize(spec.element) for _ in range(n)]  # type: ignore[arg-type]

        try:
            fn = get_generator(spec.field_type)
        except KeyError:
            logger.debug("No generator for field type '%s'; using %s", spec.field_type, FALLBACK_FIELD_TYPE)
            fn = get_generator(FALLBACK_FIELD_TYPE)

        ctx = GenContext(rng=self.rng, field_type=spec.field_type)
        return fn(spec.params or {}, ctx)
