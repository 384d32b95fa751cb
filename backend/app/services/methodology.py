"""
Sales Methodology Weighting

Blends six sales-conversation frameworks (MEDDIC, BANT, SPIN, Challenger,
Sandler, Solution Selling) according to the call context. Weights start
from a fixed base distribution, receive additive adjustments from the
policy tables below, are clamped at zero and renormalized to sum to 1.0.
"""

from typing import Dict, List, Any
from dataclasses import dataclass, field
import logging

from app.models.prep_sheet import CallContext, MethodologyWeights

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodologyFramework:
    name: str
    description: str
    primary_use_case: str
    components: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)
    tactics: List[str] = field(default_factory=list)


SALES_METHODOLOGIES: Dict[str, MethodologyFramework] = {
    "meddic": MethodologyFramework(
        name="MEDDIC",
        description="Enterprise qualification framework for complex B2B deals",
        primary_use_case="High-value deals with multiple stakeholders",
        components=[
            "Metrics - What economic impact will the solution have?",
            "Economic Buyer - Who has budget authority and final approval?",
            "Decision Criteria - Which factors will drive the decision?",
            "Decision Process - Which steps lead to approval?",
            "Identified Pain - Which business pain are we solving?",
            "Champion - Who advocates for us internally?",
        ],
        questions=[
            "How would you measure success with a solution like this?",
            "Who approves an investment of this size?",
            "Which criteria matter most when you compare options?",
            "What does your approval process look like?",
        ],
        tactics=[
            "Identify and engage the economic buyer",
            "Quantify pain with concrete metrics",
            "Map the full decision process",
        ],
    ),
    "bant": MethodologyFramework(
        name="BANT",
        description="Quick qualification of budget, authority, need and timeline",
        primary_use_case="Initial lead qualification",
        components=[
            "Budget - Are funds allocated?",
            "Authority - Who makes or influences the decision?",
            "Need - Is there a compelling business need?",
            "Timeline - When must this be in place?",
        ],
        questions=[
            "What budget is set aside for this?",
            "Who else is involved in choosing a solution?",
            "What happens if this is not solved this year?",
            "What is driving your timeline?",
        ],
        tactics=[
            "Use BANT to prioritise and qualify early",
            "Layer other frameworks on qualified opportunities",
        ],
    ),
    "spin": MethodologyFramework(
        name="SPIN Selling",
        description="Consultative selling through Situation, Problem, Implication and Need-Payoff questions",
        primary_use_case="Discovery and needs development",
        components=[
            "Situation - Understand the current state",
            "Problem - Surface challenges",
            "Implication - Explore the consequences",
            "Need-Payoff - Build value for a solution",
        ],
        questions=[
            "How do you handle this process today?",
            "Where does the current approach break down?",
            "What does that cost your team each month?",
            "What would solving it mean for your organisation?",
        ],
        tactics=[
            "Open with situation questions",
            "Develop implications before presenting anything",
        ],
    ),
    "challenger": MethodologyFramework(
        name="Challenger Sale",
        description="Teach, tailor and take control with commercial insight",
        primary_use_case="Competitive deals that need urgency",
        components=[
            "Teach - Share insight that reframes their thinking",
            "Tailor - Adapt the message to each stakeholder",
            "Take Control - Lead the conversation",
        ],
        questions=[
            "What happens to your position if nothing changes?",
            "How could this industry shift affect your current plan?",
        ],
        tactics=[
            "Lead with insight, not features",
            "Create constructive tension",
        ],
    ),
    "sandler": MethodologyFramework(
        name="Sandler",
        description="Pain-focused selling with upfront contracts",
        primary_use_case="Uncovering emotional and business drivers",
        components=[
            "Upfront Contract - Agree the meeting's purpose and outcome",
            "Pain Funnel - Go deep on the pain",
            "Budget - Address money directly",
            "Decision - Learn how decisions really get made",
        ],
        questions=[
            "What is the cost of not fixing this?",
            "How long has this been a problem?",
            "What have you tried that did not work?",
        ],
        tactics=[
            "Set an upfront contract at the start",
            "Stay on pain before solutions",
        ],
    ),
    "solution_selling": MethodologyFramework(
        name="Solution Selling",
        description="Align capabilities with specific business outcomes",
        primary_use_case="Complex solutions that need tailoring",
        components=[
            "Problem Identification - Define the business problem",
            "Solution Mapping - Connect capabilities to problems",
            "Value Proposition - State the business value",
            "Implementation Planning - Show how success is reached",
        ],
        questions=[
            "Which outcomes are you trying to reach?",
            "What does success look like in twelve months?",
            "How would you measure ROI?",
        ],
        tactics=[
            "Talk outcomes, not products",
            "Build the solution together with the buyer",
        ],
    ),
}

BASE_WEIGHTS: Dict[str, float] = {
    "meddic": 0.20,
    "bant": 0.20,
    "spin": 0.20,
    "challenger": 0.10,
    "sandler": 0.15,
    "solution_selling": 0.15,
}

# Additive adjustments keyed by call type
CALL_TYPE_ADJUSTMENTS: Dict[str, Dict[str, float]] = {
    "discovery": {"spin": 0.20, "bant": 0.05, "sandler": 0.05, "meddic": -0.10, "challenger": -0.05},
    "demo": {"solution_selling": 0.20, "spin": 0.05, "challenger": 0.10, "meddic": -0.05, "sandler": -0.10},
    "proposal": {"meddic": 0.20, "challenger": 0.15, "sandler": 0.05, "solution_selling": -0.05, "spin": -0.15},
    "negotiation": {"meddic": 0.20, "challenger": 0.15, "sandler": 0.05, "solution_selling": -0.05, "spin": -0.15},
}

HIGH_VALUE_THRESHOLD = 100_000
HIGH_VALUE_ADJUSTMENT = {"meddic": 0.10, "bant": -0.05, "spin": -0.05}
HIGH_COMPLEXITY_ADJUSTMENT = {"meddic": 0.10, "solution_selling": 0.10, "bant": -0.10, "sandler": -0.10}
NEW_BUSINESS_ADJUSTMENT = {"spin": 0.10, "challenger": 0.10, "meddic": -0.10, "solution_selling": -0.10}


def _apply(weights: Dict[str, float], adjustment: Dict[str, float]) -> None:
    for key, delta in adjustment.items():
        weights[key] += delta


def normalize_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """Clamp to non-negative and scale to sum to 1.0."""
    clamped = {key: max(0.0, value) for key, value in weights.items()}
    total = sum(clamped.values())
    if total <= 0:
        clamped = dict(BASE_WEIGHTS)
        total = sum(clamped.values())
    return {key: value / total for key, value in clamped.items()}


def compute_methodology_weights(context: CallContext) -> MethodologyWeights:
    """Compute the normalized methodology blend for a call context."""
    weights = dict(BASE_WEIGHTS)

    _apply(weights, CALL_TYPE_ADJUSTMENTS.get(context.call_type, {}))
    if context.deal_value is not None and context.deal_value > HIGH_VALUE_THRESHOLD:
        _apply(weights, HIGH_VALUE_ADJUSTMENT)
    if context.complexity == "high":
        _apply(weights, HIGH_COMPLEXITY_ADJUSTMENT)
    if context.is_new_business:
        _apply(weights, NEW_BUSINESS_ADJUSTMENT)

    return MethodologyWeights(**normalize_weights(weights))


def top_methodologies(weights: MethodologyWeights, n: int = 3) -> List[str]:
    """Keys of the n highest-weighted frameworks."""
    return weights.ranked()[:n]


def methodology_instructions(context: CallContext, weights: MethodologyWeights) -> str:
    """Prompt instructions naming the top-3 frameworks and their emphasis."""
    labels = ["PRIMARY", "SECONDARY", "SUPPORTING"]
    values = weights.as_dict()

    instructions = "**Sales Methodology Approach:**\n\n"
    instructions += (
        f"Based on this {context.call_type} call for a {context.deal_stage} stage opportunity, "
        "prioritize these methodologies:\n\n"
    )
    for index, key in enumerate(top_methodologies(weights)):
        framework = SALES_METHODOLOGIES[key]
        instructions += f"**{labels[index]}: {framework.name} ({round(values[key] * 100)}% emphasis)**\n"
        instructions += f"{framework.description}\n"
        instructions += f"Key Components: {', '.join(framework.components[:3])}\n\n"
    return instructions


def structured_output_format(weights: MethodologyWeights) -> str:
    """Markdown layout the generator must follow; priority sections are flagged."""
    def flag(condition: bool, text: str) -> str:
        return f"({text})" if condition else ""

    return f"""
**Structure your response with these sections:**

## Opportunity Overview
Brief summary of the prospect, their situation and business context.

## Objectives
What this call must achieve.

## Suggested Agenda
Time-boxed agenda items.

## Discovery Questions
{flag(weights.spin > 0.2, "Priority section for this call type")}
- **Situation:** current state
- **Problem:** challenges
- **Implication:** consequences
- **Need-Payoff:** value of solving it

## MEDDIC Qualification
{flag(weights.meddic > 0.3, "Critical for this opportunity size/complexity")}
Metrics, Economic Buyer, Decision Criteria, Decision Process, Identified Pain, Champion.

## BANT Assessment
{flag(weights.bant > 0.3, "Essential qualification criteria")}
Budget, Authority, Need, Timeline.

## Challenger Insights
{flag(weights.challenger > 0.2, "Key differentiator for competitive deals")}

## Objection Handling
{flag(weights.sandler > 0.2, "Pain-focused approach")}
Likely objections with responses.

## Next Steps
Concrete follow-up actions.
"""


def methodology_summary(weights: MethodologyWeights) -> Dict[str, Any]:
    """Compact view stored alongside a generated sheet."""
    values = weights.as_dict()
    return {
        "weights": {key: round(value, 4) for key, value in values.items()},
        "top": [
            {"key": key, "name": SALES_METHODOLOGIES[key].name, "emphasis": round(values[key] * 100)}
            for key in top_methodologies(weights)
        ],
    }
