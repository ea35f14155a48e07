"""Prompt template for the Korea-record classifier."""

from __future__ import annotations

from collections.abc import Sequence

MAX_PROMPT_TEXT = 8000
TRUNCATION_MARKER = "\n\n[... remaining text omitted ...]"

KOREA_PLACE_NAMES = ("Korea", "Corea", "한국", "조선", "Busan", "Jeju", "Dokdo")

ANALYSIS_PROMPT_TEMPLATE = """Analyze the following scholarly text and decide whether it records \
the collection or observation of this marine species in Korea.

## Target species
- Accepted name: {scientific_name}
- Synonyms: {synonyms}

## Document text
{text}

## Task
Extract the following as JSON:

1. hasKoreaRecord: Korean record present (true/false/null)
   - true: the species was directly collected or observed in Korea
   - false: the text clearly has no Korean record
   - null: uncertain
2. confidence: confidence of the judgment (0.0 - 1.0)
3. locality: collection locality, if given
4. collectionDate: collection date, if given
5. specimenInfo: specimen information, if given
6. collector: collector, if given
7. relevantQuotes: supporting sentences quoted from the text (array)
8. reasoning: explanation of the judgment

## Notes
- A bare distribution list such as "Distribution: Korea" is not a collection record.
- Answer true only when actual collection details (place, date, specimen) are present.
- Citations of other literature are not direct records.
- Korean place names include: {place_names}

## Response format
Respond with JSON only, in exactly this shape:
```json
{{
  "hasKoreaRecord": true | false | null,
  "confidence": 0.0-1.0,
  "locality": "string or null",
  "collectionDate": "string or null",
  "specimenInfo": "string or null",
  "collector": "string or null",
  "relevantQuotes": ["quote1", "quote2"],
  "reasoning": "explanation"
}}
```"""


def build_analysis_prompt(
    text: str,
    scientific_name: str,
    synonyms: Sequence[str] = (),
    max_text: int = MAX_PROMPT_TEXT,
) -> str:
    if len(text) > max_text:
        text = text[:max_text] + TRUNCATION_MARKER
    return ANALYSIS_PROMPT_TEMPLATE.format(
        scientific_name=scientific_name,
        synonyms=", ".join(synonyms) if synonyms else "none",
        text=text,
        place_names=", ".join(KOREA_PLACE_NAMES),
    )
