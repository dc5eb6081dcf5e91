"""
Templates de prompt para calificación por batch.

Un template tiene placeholders del comprador ({search_name}, {price_range},
...) que se reemplazan una sola vez, y un placeholder {listings} donde va
el bloque con todos los listings del batch numerados desde 1.
"""

import re
from typing import Optional

from faro.models import BuyerRequirements, CandidateListing, SearchCriteria

LISTINGS_PLACEHOLDER = "{listings}"

BUYER_PLACEHOLDERS = {
    "search_name": "{search_name}",
    "property_types": "{property_types}",
    "communities": "{communities}",
    "developers": "{developers}",
    "bedrooms": "{bedrooms}",
    "bathrooms": "{bathrooms}",
    "price_range": "{price_range}",
    "area_range": "{area_range}",
    "keywords": "{keywords}",
    "additional_notes": "{additional_notes}",
}

NOT_SPECIFIED = "Not specified"
DESCRIPTION_MAX_CHARS = 500

QUALIFICATION_SYSTEM_PROMPT = (
    "You are a strict real estate matching assistant. "
    "You always answer with valid JSON only."
)

DEFAULT_BATCH_PROMPT = """You are a real estate matching assistant. Analyze how well each property listing matches the buyer's requirements.

BUYER REQUIREMENTS:
- Search Name: {search_name}
- Property Types: {property_types}
- Target Communities: {communities}
- Preferred Developers: {developers}
- Bedrooms: {bedrooms}
- Bathrooms: {bathrooms}
- Price Range: {price_range}
- Area Range: {area_range}
- Keywords: {keywords}
{additional_notes}

PROPERTY LISTINGS:
{listings}

Evaluate EVERY listing above and respond with ONLY a JSON array containing one object per listing, in this exact format:
[
  {
    "index": <listing number as shown above>,
    "score": <integer 0-100>,
    "explanation": "<brief 1-2 sentence summary>",
    "highlights": ["<matching point 1>", "<matching point 2>"],
    "concerns": ["<potential issue 1>", "<potential issue 2>"]
  }
]

Scoring guide:
- 90-100: Perfect match on all criteria
- 70-89: Good match, minor deviations
- 50-69: Partial match, some criteria not met
- 30-49: Weak match, significant mismatches
- 0-29: Poor match, most criteria not met

Be strict but fair. Only include real highlights and concerns. Do not skip any index."""


def _format_value(value) -> str:
    if value is None:
        return NOT_SPECIFIED
    if isinstance(value, (list, tuple)):
        if not value:
            return NOT_SPECIFIED
        return ", ".join(str(v) for v in value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (int, float)):
        return f"{value:,}"
    return str(value)


def _format_price(value: Optional[float]) -> str:
    if value is None:
        return NOT_SPECIFIED
    return f"AED {_format_value(value)}"


def _format_range(low: Optional[float], high: Optional[float], fmt) -> str:
    if low is None and high is None:
        return NOT_SPECIFIED
    low_text = fmt(low) if low is not None else "any"
    high_text = fmt(high) if high is not None else "any"
    return f"{low_text} - {high_text}"


def requirements_from_criteria(
    criteria: SearchCriteria,
    override_notes: Optional[str] = None,
) -> BuyerRequirements:
    """
    Proyecta el criterio a requisitos para el modelo.

    `override_notes` reemplaza las notas de calificación del criterio.
    """
    return BuyerRequirements(
        name=criteria.name,
        property_types=criteria.property_types,
        communities=criteria.communities,
        developers=criteria.developers,
        bedrooms=criteria.bedrooms,
        bathrooms=criteria.bathrooms,
        min_price_aed=criteria.min_price_aed,
        max_price_aed=criteria.max_price_aed,
        min_area_sqft=criteria.min_area_sqft,
        max_area_sqft=criteria.max_area_sqft,
        keywords=criteria.keywords,
        additional_notes=override_notes or criteria.ai_prompt,
    )


def extract_buyer_values(requirements: BuyerRequirements) -> dict[str, str]:
    """Mapa placeholder -> valor para los requisitos del comprador."""
    additional_notes = ""
    if requirements.additional_notes:
        additional_notes = (
            f"\nIMPORTANT QUALIFICATION CRITERIA:\n{requirements.additional_notes}"
        )

    values = {
        "search_name": requirements.name or "Unnamed Search",
        "property_types": _format_value(requirements.property_types),
        "communities": _format_value(requirements.communities),
        "developers": _format_value(requirements.developers),
        "bedrooms": _format_value(requirements.bedrooms),
        "bathrooms": _format_value(requirements.bathrooms),
        "price_range": _format_range(
            requirements.min_price_aed, requirements.max_price_aed, _format_price
        ),
        "area_range": _format_range(
            requirements.min_area_sqft,
            requirements.max_area_sqft,
            lambda v: f"{_format_value(v)} sqft",
        ),
        "keywords": requirements.keywords or NOT_SPECIFIED,
        "additional_notes": additional_notes,
    }
    return {BUYER_PLACEHOLDERS[key]: value for key, value in values.items()}


def format_listing(listing: CandidateListing, index: int) -> str:
    """Formatea un listing como bloque numerado del prompt."""
    description = listing.field("message_body_clean", "No description")
    if len(description) > DESCRIPTION_MAX_CHARS:
        description = description[:DESCRIPTION_MAX_CHARS] + "..."

    price = listing.field("price_aed")
    area = listing.field("area_sqft")
    bedrooms = listing.data.get("bedrooms")
    bathrooms = listing.data.get("bathrooms")

    lines = [
        f"[Listing {index}]",
        f"- Type: {listing.field('property_type', NOT_SPECIFIED)}",
        f"- Transaction: {listing.field('transaction_type', NOT_SPECIFIED)}",
        f"- Location: {listing.location or NOT_SPECIFIED}",
        f"- Developer: {listing.field('developer', NOT_SPECIFIED)}",
        f"- Bedrooms: {bedrooms if bedrooms is not None else NOT_SPECIFIED}",
        f"- Bathrooms: {bathrooms if bathrooms is not None else NOT_SPECIFIED}",
        f"- Price: {_format_price(price) if price else NOT_SPECIFIED}",
        f"- Area: {_format_value(area) + ' sqft' if area else NOT_SPECIFIED}",
        f"- Furnishing: {listing.field('furnishing', NOT_SPECIFIED)}",
        f"- Off-Plan: {'Yes' if listing.data.get('is_off_plan') else 'No'}",
        f"- Urgent: {'Yes' if listing.data.get('is_urgent') else 'No'}",
        f"- Description: {description}",
    ]
    other_details = listing.field("other_details")
    if other_details:
        lines.append(f"- Details: {other_details}")
    return "\n".join(lines)


def format_listings_block(listings: list[CandidateListing]) -> str:
    return "\n\n".join(
        format_listing(listing, position)
        for position, listing in enumerate(listings, start=1)
    )


def fill_placeholders(template: str, values: dict[str, str]) -> str:
    """
    Reemplaza los placeholders conocidos en una sola pasada.

    Los valores insertados no se vuelven a interpretar como placeholders.
    """
    if not values:
        return template
    pattern = re.compile("|".join(re.escape(placeholder) for placeholder in values))
    return pattern.sub(lambda match: values[match.group(0)], template)


def is_template(text: Optional[str]) -> bool:
    """True si el texto usa algún placeholder (es un template y no notas sueltas)."""
    if not text:
        return False
    return LISTINGS_PLACEHOLDER in text or any(
        placeholder in text for placeholder in BUYER_PLACEHOLDERS.values()
    )


def validate_template(template: str) -> tuple[bool, list[str]]:
    """
    Valida que un template sirva para calificación por batch.

    Returns:
        (es_válido, problemas). Un template sin {listings} es válido: el
        bloque de listings se agrega al final.
    """
    problems = []
    if not template or not template.strip():
        problems.append("El template está vacío")
    elif not any(p in template for p in BUYER_PLACEHOLDERS.values()):
        problems.append("Falta al menos un placeholder de requisitos del comprador")
    return not problems, problems


def build_batch_prompt(
    requirements: BuyerRequirements,
    listings: list[CandidateListing],
    template: Optional[str] = None,
) -> str:
    """
    Arma el prompt de un batch: requisitos una sola vez y cada listing
    numerado desde 1.
    """
    template = template or DEFAULT_BATCH_PROMPT
    buyer_values = extract_buyer_values(requirements)
    listings_block = format_listings_block(listings)

    # El placeholder se busca en el template crudo: ni las notas ni los
    # listings se vuelven a interpretar como template
    if LISTINGS_PLACEHOLDER in template:
        parts = [
            fill_placeholders(part, buyer_values)
            for part in template.split(LISTINGS_PLACEHOLDER)
        ]
        return listings_block.join(parts)

    prompt = fill_placeholders(template, buyer_values)

    return (
        f"{prompt}\n\nPROPERTY LISTINGS:\n{listings_block}\n\n"
        "Respond with ONLY a JSON array with one object per listing: "
        '{"index", "score", "explanation", "highlights", "concerns"}.'
    )
