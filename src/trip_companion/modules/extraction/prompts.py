from __future__ import annotations

from typing import Any

EXPENSE_TYPES: tuple[str, ...] = ("toll", "parking", "fuel", "other")

_AMOUNT_RULES = (
    "Rules:\n"
    "- amount: final total, no currency symbol\n"
    "- Convert commas to dots for decimals (e.g. 12,50 -> 12.5)\n"
    "- currency: EUR if not explicit\n"
    "- If data is unclear, use null"
)

_SIMPLE_SHAPE = (
    'Return JSON: { "amount": number, "currency": string (ISO code), '
    '"vendorName": string|null, "date": string|null (YYYY-MM-DD) }'
)

EXPENSE_PROMPTS: dict[str, str] = {
    "toll": "Extract ONLY the total amount from this toll/motorway receipt.\n"
    + _SIMPLE_SHAPE
    + "\n"
    + _AMOUNT_RULES,
    "parking": "Extract ONLY the total amount from this parking receipt.\n"
    + _SIMPLE_SHAPE
    + "\n"
    + _AMOUNT_RULES,
    "fuel": (
        "Extract fuel purchase data from this gas station receipt.\n"
        'Return JSON: { "amount": number, "currency": string, "quantity": number|null, '
        '"unit": string|null, "pricePerUnit": number|null, "vendorName": string|null, '
        '"date": string|null }\n'
        "Rules:\n"
        "- amount: total paid (number only)\n"
        "- quantity: liters or gallons purchased\n"
        '- unit: "L", "liters" or "gal"\n'
        "- pricePerUnit: price per liter/gallon\n"
        "- Convert commas to dots for decimals\n"
        "- currency: EUR if not explicit\n"
        "- If data is unclear, use null"
    ),
    "other": "Extract the total amount from this receipt.\n" + _SIMPLE_SHAPE + "\n" + _AMOUNT_RULES,
}


def _receipt_schema(vendor_description: str, *, fuel: bool = False) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "amount": {"type": "number", "description": "Total amount paid"},
        "currency": {"type": "string", "description": "Currency ISO code"},
        "vendorName": {"type": "string", "description": vendor_description},
        "date": {"type": "string", "description": "Receipt date YYYY-MM-DD"},
    }
    if fuel:
        properties["quantity"] = {"type": "number", "description": "Liters or gallons purchased"}
        properties["unit"] = {"type": "string", "description": "Unit: L, liters, gal"}
        properties["pricePerUnit"] = {"type": "number", "description": "Price per liter/gallon"}
    return {"type": "object", "properties": properties, "required": ["amount"]}


EXPENSE_SCHEMAS: dict[str, dict[str, Any]] = {
    "toll": _receipt_schema("Toll operator name"),
    "parking": _receipt_schema("Parking provider name"),
    "fuel": _receipt_schema("Gas station name", fuel=True),
    "other": _receipt_schema("Vendor name"),
}


CALLSHEET_PROMPT = """\
You are an experienced production coordinator reading a film or TV call sheet.
Call sheets are not standardized: they may be professional PDFs, scans or photos,
in any language (German, English, Spanish, ...). Read the whole document and
return ONE JSON object, with no markdown and no text outside the JSON:

{
  "date": "YYYY-MM-DD",
  "projectName": "string",
  "productionCompanies": ["string", ...],
  "locations": ["string", ...]
}

date: the main shooting day of this call sheet. Ignore prep, wrap and dates
mentioned in passing. Normalize to YYYY-MM-DD.

projectName: the creative title of the show, film or series being shot. It is
usually the most prominent text in the header, or follows "Project:",
"Projekt:", "Proyecto:", "Series:", "Title:". Never use the document type
("Call Sheet", "Callsheet", "Drehplan", "Tagesdisposition", "Hoja de Rodaje"),
a production company name (GmbH, LLC, Ltd, Pictures, Productions, ...), a set or
studio name, or a bare episode number. Drop legal suffixes ("DARK GmbH" ->
"DARK"). Never return an empty string; use "Untitled Project" only as a last
resort.

productionCompanies: every company producing the project, including
co-producers, from the header, logos, footer or a "Production"/"Produktion"
section. One company per entry. Return [] when none is found.

locations: physical addresses where the cameras roll on THIS day only. Include
full street addresses and well-known landmarks with their city. Exclude
catering, parking, base camp, wardrobe, pick-up or transfer points, the
production office, and locations for other days. If a place name and its
address are both given, return the address only.
"""

CALLSHEET_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {"type": "string", "description": "Date of the callsheet in YYYY-MM-DD format"},
        "projectName": {"type": "string"},
        "productionCompanies": {"type": "array", "items": {"type": "string"}},
        "locations": {
            "type": "array",
            "items": {"type": "string"},
            "description": "List of physical filming locations (addresses or names)",
        },
    },
    "required": ["date", "projectName", "productionCompanies", "locations"],
}
