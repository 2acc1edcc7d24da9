"""Shared constants for certificate templates and lifecycle identifiers."""

PLACEHOLDER_CHOICES: list[tuple[str, str]] = [
    ("participant_name", "Participant name"),
    ("event_name", "Event name"),
    ("event_date", "Event date"),
    ("certificate_number", "Certificate number"),
    ("category", "Event category"),
    ("location", "Event location"),
]

PLACEHOLDER_KEYS: set[str] = {key for key, _ in PLACEHOLDER_CHOICES}

PLACEHOLDER_LABELS: dict[str, str] = dict(PLACEHOLDER_CHOICES)

PLACEHOLDER_SAMPLES: dict[str, str] = {
    "participant_name": "John Doe",
    "event_name": "Digital Marketing Workshop",
    "event_date": "15 January 2025",
    "certificate_number": "CERT-2025-1A2B3C4D",
    "category": "Workshop",
    "location": "Jakarta",
}

FONT_FAMILIES: tuple[str, ...] = (
    "Arial",
    "Times New Roman",
    "Georgia",
    "Courier New",
    "Verdana",
    "Helvetica",
    "Palatino",
    "Garamond",
    "Comic Sans MS",
    "Impact",
)

# Families the PDF renderer can draw natively; anything else falls back.
PDF_FONT_MAP: dict[str, str] = {
    "Arial": "Helvetica",
    "Helvetica": "Helvetica",
    "Verdana": "Helvetica",
    "Comic Sans MS": "Helvetica",
    "Impact": "Helvetica-Bold",
    "Times New Roman": "Times-Roman",
    "Georgia": "Times-Roman",
    "Palatino": "Times-Roman",
    "Garamond": "Times-Roman",
    "Courier New": "Courier",
}

SAFE_FALLBACK_FONT = "Helvetica"

ALIGN_CHOICES: tuple[str, ...] = ("left", "center", "right")

ORIENTATIONS: tuple[str, ...] = ("landscape", "portrait")

DEFAULT_TEMPLATE_SETTINGS = {
    "width": 1200,
    "height": 900,
    "orientation": "landscape",
    "backgroundColor": "#ffffff",
}

DEFAULT_FONT_SIZE = 24
DEFAULT_FONT_FAMILY = "Arial"
DEFAULT_COLOR = "#000000"
DEFAULT_ALIGN = "center"

# Editor canvases never render at more than 80% of the design size.
MAX_DISPLAY_SCALE = 0.8

TOKEN_LENGTH = 10
MAX_TOKEN_ATTEMPTS = 20

VERIFICATION_CODE_LENGTH = 12
VERIFICATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
