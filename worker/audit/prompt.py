"""Audit prompt construction.

The framework sections are rendered from the rubric registry, so the
generator is always asked for exactly the categories, assertions and
PXL factors that repair and scoring expect.
"""

import json
from typing import Any

from worker.audit.rubric import (
    CATEGORY_ORDER,
    CATEGORY_WEIGHTS,
    LIFT_CATEGORIES,
    PXL_FACTOR_LABELS,
    PXL_FACTOR_WEIGHTS,
)

SYSTEM_PROMPT = (
    "You are a senior CRO specialist. Return ONLY valid JSON matching the exact "
    "structure requested. All text must be in English. Be specific and "
    "evidence-based in your analysis."
)

ROLE = """You are a senior CRO (Conversion Rate Optimization) specialist conducting a professional audit using the LIFT Model framework combined with PXL prioritization methodology.

## YOUR ROLE
You are performing a comprehensive CRO audit for experienced conversion optimization professionals. Your audience understands frameworks like LIFT Model, PXL, ICE scoring, and expects data-driven, evidence-based analysis. Do NOT oversimplify or provide generic advice."""

SCORE_BANDS = """**Category Scores (0-100):**
- 90-100: Excellent, best practice implementation
- 70-89: Good, minor improvements possible
- 50-69: Needs work, significant opportunities
- 30-49: Poor, major issues present
- 0-29: Critical, fundamental problems"""

RECOMMENDATIONS = """## CRITICAL ISSUES
Extract top 3-5 issues with severity "critical" or "high" that have the biggest conversion impact.

## QUICK WINS
Identify 2-4 changes that are:
- Easy to implement (< 2 hours)
- High expected impact
- Low risk

## A/B TESTS
Generate 3-5 prioritized test recommendations:
- Each linked to a specific assertion failure
- Proper PXL scoring with factor breakdown
- 2-3 variants including control
- Clear hypothesis following format: "If we [change], then [metric] will [improve] because [reason]\""""

STRICT_RULES = [
    "ALL text output MUST be in English",
    "Return ONLY valid JSON - no markdown, no explanations",
    "Every assertion MUST have evidence from the actual page data",
    "Every recommendation MUST be specific and actionable",
    "Do NOT invent elements not present in the snapshot",
    'If data is insufficient, mark assertion as "warning" with evidence explaining the limitation',
    "Be critical and direct - this is a professional audit",
    "Inhibitor categories (anxiety, distraction): HIGH score = GOOD (low anxiety/distraction)",
]

RETRY_REMINDER = """## IMPORTANT
Your previous answer could not be parsed. Respond with a single JSON object
and nothing else: no code fences, no commentary before or after it."""


def _lift_section() -> str:
    drivers = []
    inhibitors = []
    for number, key in enumerate(CATEGORY_ORDER, start=1):
        category = LIFT_CATEGORIES[key]
        line = f"{number}. **{category.name}** - {category.description}"
        (inhibitors if category.is_inhibitor else drivers).append(line)

    return "\n".join(
        [
            "## FRAMEWORK: LIFT MODEL",
            f"The LIFT Model evaluates landing pages across {len(CATEGORY_ORDER)} factors:",
            "",
            "**Value Drivers (increase motivation):**",
            *drivers,
            "",
            "**Conversion Inhibitors (decrease motivation):**",
            *inhibitors,
        ]
    )


def _pxl_section() -> str:
    lines = [
        "## FRAMEWORK: PXL PRIORITIZATION",
        "For each A/B test recommendation, calculate PXL score based on binary factors:",
    ]
    for key, weight in PXL_FACTOR_WEIGHTS.items():
        lines.append(f"- **{PXL_FACTOR_LABELS[key]}** (+{weight}) [{key}]")
    lines.extend(["", f"PXL Score = Sum of applicable factors (max {sum(PXL_FACTOR_WEIGHTS.values())})"])
    return "\n".join(lines)


def _assertions_section() -> str:
    lines = [
        "## ASSERTIONS TO EVALUATE",
        "For each LIFT category, evaluate these specific assertions:",
    ]
    for key in CATEGORY_ORDER:
        category = LIFT_CATEGORIES[key]
        suffix = " - INHIBITOR" if category.is_inhibitor else ""
        lines.extend(["", f"### {category.name} ({category.short_name}){suffix} [{key.value}]"])
        lines.extend(f"- {a.id}: {a.question}" for a in category.assertions)
    return "\n".join(lines)


def _scoring_section() -> str:
    weights = ", ".join(
        f"{LIFT_CATEGORIES[k].short_name}({round(CATEGORY_WEIGHTS[k] * 100)}%)" for k in CATEGORY_ORDER
    )
    inhibitors = ", ".join(LIFT_CATEGORIES[k].short_name for k in CATEGORY_ORDER if LIFT_CATEGORIES[k].is_inhibitor)
    return "\n".join(
        [
            "## SCORING GUIDELINES",
            "",
            SCORE_BANDS,
            "",
            "**Overall Score Calculation:**",
            f"Weight categories: {weights}",
            f"For inhibitors ({inhibitors}): High score = LOW anxiety/distraction (good)",
            "",
            "**Assertion Status:**",
            '- "pass": Assertion is satisfied',
            '- "fail": Clear violation or absence',
            '- "warning": Partial implementation or concerns',
        ]
    )


def _output_example() -> dict[str, Any]:
    categories: dict[str, Any] = {}
    for key in CATEGORY_ORDER:
        category = LIFT_CATEGORIES[key]
        example: dict[str, Any] = {
            "name": category.name,
            "shortName": category.short_name,
            "score": "0-100",
            "description": category.description,
        }
        if category.is_inhibitor:
            example["isInhibitor"] = True
        first = category.assertions[0]
        example["assertions"] = [
            {
                "id": first.id,
                "name": first.name,
                "question": first.question,
                "status": "pass|fail|warning",
                "severity": "critical|high|medium|low",
                "evidence": "Specific observation from the page",
                "recommendation": "Specific actionable fix or null if passed",
            }
        ]
        categories[key.value] = example

    return {
        "url": "extracted from snapshot or 'Unknown'",
        "analyzedAt": "ISO timestamp",
        "overallScore": "0-100",
        "liftCategories": categories,
        "criticalIssues": [
            {
                "id": "assertion_id",
                "category": "Category Name",
                "title": "Brief description of the issue",
                "impact": "critical|high",
            }
        ],
        "quickWins": [
            {
                "title": "Change description",
                "current": "What exists now",
                "suggested": "What to change to",
                "effort": "easy",
                "impact": "high",
            }
        ],
        "tests": [
            {
                "id": 1,
                "priority": "critical|high|medium",
                "pxlScore": "0-100",
                "title": "Test name",
                "hypothesis": "If we [change], then [metric] will [improve] because [reason]",
                "assertionId": "linked assertion",
                "category": "LIFT category",
                "variants": [
                    {"name": "Control", "description": "Current state"},
                    {"name": "Variant A", "description": "Proposed change"},
                ],
                "expectedImpact": "high|medium|low",
                "implementationEffort": "easy|medium|hard",
                "pxlFactors": {key: "true|false" for key in PXL_FACTOR_WEIGHTS},
            }
        ],
    }


def build_audit_prompt(snapshot: Any, strict: bool = False) -> str:
    """Build the audit prompt for a page snapshot.

    Args:
        snapshot: Page snapshot captured by the browser extension
        strict: Add a stronger JSON-only reminder, used when retrying

    Returns:
        The complete user prompt
    """
    rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(STRICT_RULES, start=1))
    sections = [
        ROLE,
        _lift_section(),
        _pxl_section(),
        _assertions_section(),
        _scoring_section(),
        RECOMMENDATIONS,
        "## OUTPUT FORMAT\nReturn a valid JSON object with this EXACT structure "
        "(every category and every listed assertion must be present):\n\n"
        + json.dumps(_output_example(), indent=2),
        f"## STRICT RULES\n{rules}",
    ]
    if strict:
        sections.append(RETRY_REMINDER)
    sections.append("## PAGE DATA TO ANALYZE\n" + json.dumps(snapshot, indent=2, ensure_ascii=False, default=str))
    return "\n\n".join(sections)
