"""LIFT rubric definitions for conversion audits.

Defines the six LIFT categories, the assertions evaluated in each one,
and the PXL prioritization weights. Everything that needs a default
value for a missing field looks it up here.
"""

from dataclasses import dataclass, field
from enum import StrEnum

RUBRIC_VERSION = "1.0"


class CategoryKey(StrEnum):
    """The six fixed LIFT category keys, in canonical order."""

    VALUE_PROPOSITION = "valueProposition"
    CLARITY = "clarity"
    RELEVANCE = "relevance"
    ANXIETY = "anxiety"
    DISTRACTION = "distraction"
    URGENCY = "urgency"


# Iteration order for scoring, issue extraction and layout
CATEGORY_ORDER: tuple[CategoryKey, ...] = tuple(CategoryKey)


@dataclass(frozen=True)
class AssertionTemplate:
    """A single yes/no/partial check evaluated within a category."""

    id: str
    name: str
    question: str
    severity: str  # Default severity

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "question": self.question,
            "severity": self.severity,
        }


@dataclass(frozen=True)
class CategoryTemplate:
    """Registry entry for one LIFT category."""

    key: CategoryKey
    name: str
    short_name: str
    description: str
    is_inhibitor: bool = False
    assertions: tuple[AssertionTemplate, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "key": self.key.value,
            "name": self.name,
            "shortName": self.short_name,
            "description": self.description,
            "isInhibitor": self.is_inhibitor,
            "assertions": [a.to_dict() for a in self.assertions],
        }


LIFT_CATEGORIES: dict[CategoryKey, CategoryTemplate] = {
    CategoryKey.VALUE_PROPOSITION: CategoryTemplate(
        key=CategoryKey.VALUE_PROPOSITION,
        name="Value Proposition",
        short_name="VP",
        description="Why should visitors choose you over alternatives?",
        assertions=(
            AssertionTemplate(
                "VP_CLEAR",
                "Clear Value",
                "Is the value proposition clear within 5 seconds?",
                "critical",
            ),
            AssertionTemplate(
                "VP_UNIQUE",
                "Differentiation",
                "Is there clear differentiation from competitors?",
                "high",
            ),
            AssertionTemplate(
                "VP_BENEFIT",
                "Benefits vs Features",
                "Are benefits emphasized over features?",
                "medium",
            ),
            AssertionTemplate(
                "VP_SPECIFIC",
                "Specificity",
                "Are claims specific and quantifiable?",
                "medium",
            ),
        ),
    ),
    CategoryKey.CLARITY: CategoryTemplate(
        key=CategoryKey.CLARITY,
        name="Clarity",
        short_name="CL",
        description="How quickly can visitors understand your offering?",
        assertions=(
            AssertionTemplate(
                "CL_HIERARCHY",
                "Visual Hierarchy",
                "Is visual hierarchy clear and guides the eye?",
                "high",
            ),
            AssertionTemplate(
                "CL_HEADLINE",
                "Headline Clarity",
                "Is the headline understandable without context?",
                "high",
            ),
            AssertionTemplate(
                "CL_CTA",
                "CTA Clarity",
                "Does CTA clearly communicate what happens next?",
                "critical",
            ),
            AssertionTemplate(
                "CL_FLOW",
                "Content Flow",
                "Is the page structure logical?",
                "medium",
            ),
            AssertionTemplate(
                "CL_LANGUAGE",
                "Language Simplicity",
                "Is the language free of jargon and easy to understand?",
                "medium",
            ),
        ),
    ),
    CategoryKey.RELEVANCE: CategoryTemplate(
        key=CategoryKey.RELEVANCE,
        name="Relevance",
        short_name="RL",
        description="Does the page match visitor expectations?",
        assertions=(
            AssertionTemplate(
                "RL_MESSAGE",
                "Message Match",
                "Does page content match the traffic source promise?",
                "critical",
            ),
            AssertionTemplate(
                "RL_AUDIENCE",
                "Audience Fit",
                "Does the language match target audience?",
                "high",
            ),
            AssertionTemplate(
                "RL_INTENT",
                "Intent Match",
                "Does page serve the user intent?",
                "high",
            ),
            AssertionTemplate(
                "RL_CONTEXT",
                "Contextual Relevance",
                "Is the content contextually appropriate for the visitor stage?",
                "medium",
            ),
        ),
    ),
    CategoryKey.ANXIETY: CategoryTemplate(
        key=CategoryKey.ANXIETY,
        name="Anxiety",
        short_name="AX",
        description="Trust inhibitors that prevent conversion",
        is_inhibitor=True,
        assertions=(
            AssertionTemplate(
                "AX_SOCIAL",
                "Social Proof",
                "Are there credible social proof elements?",
                "critical",
            ),
            AssertionTemplate(
                "AX_TRUST",
                "Trust Signals",
                "Are trust badges and security indicators present?",
                "high",
            ),
            AssertionTemplate(
                "AX_RISK",
                "Risk Reversal",
                "Is the perceived risk minimized?",
                "high",
            ),
            AssertionTemplate(
                "AX_CONTACT",
                "Contact Access",
                "Can visitors easily reach support?",
                "medium",
            ),
            AssertionTemplate(
                "AX_PRIVACY",
                "Privacy Assurance",
                "Are privacy concerns addressed?",
                "low",
            ),
            AssertionTemplate(
                "AX_CREDIBILITY",
                "Credibility Markers",
                "Are there authority/expertise indicators?",
                "high",
            ),
        ),
    ),
    CategoryKey.DISTRACTION: CategoryTemplate(
        key=CategoryKey.DISTRACTION,
        name="Distraction",
        short_name="DI",
        description="Elements that divert from the conversion goal",
        is_inhibitor=True,
        assertions=(
            AssertionTemplate(
                "DI_FOCUS",
                "Single Goal",
                "Does the page have one clear conversion goal?",
                "critical",
            ),
            AssertionTemplate(
                "DI_NAV",
                "Navigation",
                "Is navigation minimized to reduce exit points?",
                "medium",
            ),
            AssertionTemplate(
                "DI_LINKS",
                "Outbound Links",
                "Are outbound links minimized?",
                "low",
            ),
            AssertionTemplate(
                "DI_VISUAL",
                "Visual Noise",
                "Is the design clean without visual clutter?",
                "medium",
            ),
            AssertionTemplate(
                "DI_COMPETING",
                "Competing CTAs",
                "Is there a single primary CTA without competing actions?",
                "high",
            ),
        ),
    ),
    CategoryKey.URGENCY: CategoryTemplate(
        key=CategoryKey.URGENCY,
        name="Urgency",
        short_name="UR",
        description="Motivation to act now rather than later",
        assertions=(
            AssertionTemplate(
                "UR_SCARCITY",
                "Scarcity",
                "Are there legitimate scarcity elements?",
                "medium",
            ),
            AssertionTemplate(
                "UR_INCENTIVE",
                "Time Incentive",
                "Is there a reason to act now?",
                "high",
            ),
            AssertionTemplate(
                "UR_LOSS",
                "Loss Aversion",
                "Is the cost of inaction communicated?",
                "medium",
            ),
        ),
    ),
}

# Weights given to the generator for its own overall score. Not applied by
# the client-side recompute, which uses an unweighted mean.
CATEGORY_WEIGHTS: dict[CategoryKey, float] = {
    CategoryKey.VALUE_PROPOSITION: 0.25,
    CategoryKey.CLARITY: 0.20,
    CategoryKey.RELEVANCE: 0.15,
    CategoryKey.ANXIETY: 0.20,
    CategoryKey.DISTRACTION: 0.10,
    CategoryKey.URGENCY: 0.10,
}

# PXL prioritization factor -> points (sum is 100)
PXL_FACTOR_WEIGHTS: dict[str, int] = {
    "aboveFold": 15,
    "noticeableIn5Sec": 15,
    "runOnHighTraffic": 15,
    "affectsAllUsers": 15,
    "easyToImplement": 20,
    "evidenceBacked": 20,
}

PXL_FACTOR_LABELS: dict[str, str] = {
    "aboveFold": "Above Fold",
    "noticeableIn5Sec": "Noticeable in 5 Seconds",
    "runOnHighTraffic": "Run on High-Traffic Page",
    "affectsAllUsers": "Affects All Users",
    "easyToImplement": "Easy to Implement",
    "evidenceBacked": "Evidence-Backed",
}


def get_category(key: str) -> CategoryTemplate:
    """Get the registry entry for a category key.

    Raises KeyError for anything outside the six fixed keys.
    """
    try:
        category_key = CategoryKey(key)
    except ValueError:
        raise KeyError(key) from None
    return LIFT_CATEGORIES[category_key]


def get_assertion_template(assertion_id: str) -> AssertionTemplate | None:
    """Find an assertion template by id across all categories."""
    for key in CATEGORY_ORDER:
        for template in LIFT_CATEGORIES[key].assertions:
            if template.id == assertion_id:
                return template
    return None


def rubric_to_dict() -> dict:
    """Convert the whole rubric to a dictionary."""
    return {
        "version": RUBRIC_VERSION,
        "categories": {k.value: LIFT_CATEGORIES[k].to_dict() for k in CATEGORY_ORDER},
        "categoryWeights": {k.value: CATEGORY_WEIGHTS[k] for k in CATEGORY_ORDER},
        "pxlFactorWeights": dict(PXL_FACTOR_WEIGHTS),
    }
