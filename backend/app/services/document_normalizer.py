"""
Document classification and filename normalization.

Maps a raw attachment filename to a canonical document type and builds
deterministic, collision-free target filenames for one submission:

    "Passport scan.pdf", "dl front.pdf", "dl back.pdf"  (employee "John Doe")
      -> john_doe_passport.pdf, john_doe_driving_license_1.pdf,
         john_doe_driving_license_2.pdf
"""

import re
from collections import Counter

# Ordered most specific first: "driving license" must win over the generic
# identity patterns, "work permit" over "visa", and so on.
_DOCUMENT_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"driving[\s_-]*licen[cs]e|drivers?[\s_-]*licen[cs]e|\bdl\b"), "driving_license"),
    (re.compile(r"birth[\s_-]*certificate"), "birth_certificate"),
    (re.compile(r"work[\s_-]*permit"), "work_permit"),
    (re.compile(r"address[\s_-]*proof|utility[\s_-]*bill|residence[\s_-]*proof"), "address_proof"),
    (re.compile(r"social[\s_-]*security|\bssn\b|\bss\b"), "social_security"),
    (re.compile(r"voter[\s_-]*id"), "voter_id"),
    (re.compile(r"pan[\s_-]*card|\bpan\b"), "pan_card"),
    (re.compile(r"aadhaar|aadhar|\buid\b"), "aadhaar"),
    (re.compile(r"passport"), "passport"),
    (re.compile(r"visa"), "visa"),
    (re.compile(r"\bid[\s_-]*card\b|\bidentity\b|\bnational[\s_-]*id\b|\bid[\s_-]*proof\b"), "identity_document"),
]

FALLBACK_DOCUMENT_TYPE = "document"

DOCUMENT_TYPES = tuple(doc_type for _, doc_type in _DOCUMENT_PATTERNS) + (FALLBACK_DOCUMENT_TYPE,)

_PDF_SUFFIX_RE = re.compile(r"\.pdf$", re.IGNORECASE)
_SEPARATORS_RE = re.compile(r"[_\s-]+")


def to_snake_case(name: str) -> str:
    """
    Convert an employee name to a filesystem-safe slug.

    Examples:
        "John Doe"        -> "john_doe"
        "  Anne-Marie O'Neil " -> "annemarie_oneil"
    """
    lowered = name.strip().lower()
    alnum = re.sub(r"[^a-z0-9\s]", "", lowered)
    return re.sub(r"\s+", "_", alnum)


def detect_document_type(filename: str) -> str:
    """
    Detect the document type of a filename, or "document" when nothing matches.
    """
    base_name = _PDF_SUFFIX_RE.sub("", filename)
    base_name = _SEPARATORS_RE.sub(" ", base_name).lower()

    for pattern, doc_type in _DOCUMENT_PATTERNS:
        if pattern.search(base_name):
            return doc_type

    return FALLBACK_DOCUMENT_TYPE


def normalize_document_batch(filenames: list[str], employee_name: str) -> dict[str, str]:
    """
    Map each original filename to ``{slug}_{type}.pdf``.

    Types that occur more than once in the batch get a 1-based suffix
    (``_1``, ``_2``, ...) in input order; singletons get none.

    Duplicate original filenames collapse onto one key; callers that need
    one name per attachment should use ``normalize_document_names``.
    """
    return dict(zip(filenames, normalize_document_names(filenames, employee_name)))


def normalize_document_names(filenames: list[str], employee_name: str) -> list[str]:
    """Positional variant of ``normalize_document_batch``: one name per input."""
    prefix = to_snake_case(employee_name)
    types = [detect_document_type(filename) for filename in filenames]
    counts = Counter(types)

    seen: Counter = Counter()
    names: list[str] = []
    for doc_type in types:
        seen[doc_type] += 1
        suffix = f"_{seen[doc_type]}" if counts[doc_type] > 1 else ""
        names.append(f"{prefix}_{doc_type}{suffix}.pdf")
    return names
