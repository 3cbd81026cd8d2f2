from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from .config import Settings, settings as default_settings
from .models import Category


# (patrón, categoría, confianza). Las reglas específicas llevan más confianza
# que las genéricas; gana el match de mayor confianza.
DEFAULT_RULES: Tuple[Tuple[str, str, float], ...] = (
    (r"interest paid", "Interest Income", 0.98),
    (r"now withdrawal", "Transfer Out", 0.98),
    (r"ach deposit", "Transfer In", 0.98),
    (r"interest.*paid|interest.*earned|interest.*income", "Interest Income", 0.95),
    (r"transfer.*out|withdrawal|wire.*out|now.*withdrawal", "Transfer Out", 0.90),
    (r"transfer.*in|deposit|wire.*in|ach.*deposit|direct.*deposit", "Transfer In", 0.90),
    (r"doordash|ubereats|grubhub|postmates|delivery", "Dining Out", 0.95),
    (r"mcdonalds|burger king|subway|taco bell|kfc|wendys|chipotle|panera", "Dining Out", 0.90),
    (r"starbucks|dunkin|coffee|cafe", "Dining Out", 0.85),
    (r"netflix|hulu|disney|amazon prime|spotify|apple music|youtube premium", "Entertainment", 0.95),
    (r"amc|regal|cinemark|movie|theater|cinema", "Entertainment", 0.90),
    (r"shell|exxon|bp|chevron|mobil|gas|fuel", "Transportation", 0.90),
    (r"uber|lyft|taxi|ride", "Transportation", 0.90),
    (r"metro|bus|train|transit|mta|bart", "Transportation", 0.90),
    (r"kroger|safeway|whole foods|trader joe|costco|walmart|target.*grocery", "Groceries", 0.85),
    (r"amazon|amzn", "Shopping", 0.80),
    (r"target|walmart|macy|nordstrom|sears", "Shopping", 0.80),
    (r"electric|gas.*utility|power.*company|pge|edison", "Utilities", 0.90),
    (r"verizon|att|t.mobile|comcast|xfinity|internet|phone.*bill", "Utilities", 0.90),
    (r"cvs|walgreens|rite aid|pharmacy", "Healthcare", 0.90),
    (r"medical|doctor|dentist|clinic|hospital", "Healthcare", 0.85),
    (r"atm.*fee|withdrawal.*fee", "Bank Fees", 0.95),
    (r"transfer|deposit|withdrawal", "Transfer", 0.70),
)

NO_MATCH_REASON = "No matching patterns found"


@dataclass
class CategorizationResult:
    category_id: Optional[str]
    confidence: float
    reason: str
    needs_review: bool


class Categorizer(Protocol):
    def categorize(self, description: str, amount: float, user_id: str) -> CategorizationResult:
        ...


class CategoryResolver(Protocol):
    def get_or_create_category(self, name: str, is_system: bool = False) -> Category:
        ...


def normalize_description(description: str) -> str:
    s = (description or "").lower()
    s = re.sub(r"[^\w\s]", " ", s)
    return re.sub(r"\s+", " ", s).strip()


class RuleCategorizer:
    """
    Categorización por reglas regex sobre la descripción (normalizada o cruda).
    El nombre de categoría se resuelve a un id a través del store.
    """

    def __init__(
        self,
        store: CategoryResolver,
        rules: Optional[Sequence[Tuple[str, str, float]]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self.threshold = self.settings.REVIEW_CONFIDENCE_THRESHOLD
        self._patterns: List[Tuple["re.Pattern[str]", str, float]] = [
            (re.compile(pattern, re.IGNORECASE), category, confidence)
            for pattern, category, confidence in (rules or DEFAULT_RULES)
        ]

    def match(self, description: str) -> Optional[Tuple[str, float, str]]:
        """(categoría, confianza, patrón) del mejor match, o None."""
        normalized = normalize_description(description)
        best: Optional[Tuple[str, float, str]] = None
        for pattern, category, confidence in self._patterns:
            if not (pattern.search(normalized) or pattern.search(description or "")):
                continue
            if best is None or confidence > best[1]:
                best = (category, confidence, pattern.pattern)
        return best

    def categorize(self, description: str, amount: float, user_id: str) -> CategorizationResult:
        best = self.match(description)
        if best is None:
            return CategorizationResult(None, 0.0, NO_MATCH_REASON, True)

        category_name, confidence, pattern = best
        category = self.store.get_or_create_category(category_name)
        return CategorizationResult(
            category_id=category.id,
            confidence=confidence,
            reason=f"Matched pattern: {pattern}",
            needs_review=confidence < self.threshold,
        )
