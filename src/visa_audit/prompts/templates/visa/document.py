"""Document reading and cross-check prompt templates.

Prompts are stored in ``_PROMPT_DATA`` and exposed via ``__getattr__``
which delegates to the prompt registry.
"""

from __future__ import annotations

# ── Raw prompt data (read by the prompt registry) ───────────────────

_PROMPT_DATA: dict[str, str] = {
    "READ_PROMPT": """Read this document and extract all information.

Tasks:
1. Extract ALL text from the document (word-for-word transcription)
2. Identify the document type
3. Identify the primary language
4. Extract structured data (dates, amounts, names, reference numbers)

Return JSON:
{
  "docType": "passport|bank_statement|employment_letter|cover_letter|invitation_letter|\
flight_booking|hotel_booking|insurance_policy|tax_return|photo|other",
  "language": "primary language",
  "extractedText": "verbatim transcription",
  "structuredData": { "key": "value pairs of important data" }
}

Directly return the JSON object. Do not output anything else.""",
    "CROSS_CHECK_PROMPT": """You are checking a visa application document against a \
specific requirement.

REQUIREMENT: {requirement_name}
{requirement_description}

NEW DOCUMENT ({doc_type}, {language}):
{document_text}

{previous_section}Decide whether the new document alone satisfies the literal \
requirement text.

Return JSON:
{{
  "compliance": {{
    "requirement": "{requirement_name}",
    "status": "met|warning|critical",
    "detail": "brief explanation of how the document satisfies or fails this requirement",
    "documentRef": "{doc_type}"
  }},
  "crossDocFindings": [
    {{
      "severity": "critical|warning|info",
      "finding": "brief description",
      "detail": "explanation"
    }}
  ]
}}

If no cross-document issues, return an empty crossDocFindings array.""",
    "CROSS_CHECK_PREVIOUS_SECTION": """PREVIOUSLY ANALYZED DOCUMENTS:
{previous_context}

Check for contradictions between the new document and previous documents: the \
same fact (dates, names, amounts, employment status, job titles) asserted \
differently, including across languages.

""",
}

# ── PEP 562 module __getattr__ ──────────────────────────────────────

_PROMPT_NAMES = frozenset(_PROMPT_DATA.keys())


def __getattr__(name: str) -> str:
    if name in _PROMPT_NAMES:
        from visa_audit.prompts.registry import get_prompt

        return get_prompt("visa", "document", name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return list(_PROMPT_NAMES) + ["_PROMPT_DATA"]
