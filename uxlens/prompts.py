"""
Prompt Builder

Renders an AnalysisContext into the instruction text sent to the vision
model. Rendering is a pure function of its inputs: the same context always
produces the same prompt, and optional fields that are not set are left
out entirely rather than filled with placeholder text.
"""

from typing import Iterable, Mapping, Optional, Union

from .models import AnalysisContext, UserContext, UserPersona


ANALYSIS_INSTRUCTIONS = {
    "usability": """**USABILITY ANALYSIS:**
- Is the interface intuitive for this user's expertise level?
- Can the user complete their intended task efficiently?
- Are there any confusing or misleading elements?
- Are interactive elements clearly identifiable?""",
    "accessibility": """**ACCESSIBILITY ANALYSIS:**
- WCAG 2.1 compliance (AA minimum)
- Color contrast ratios (4.5:1 for normal text, 3:1 for large text)
- Keyboard navigation and visible focus indicators
- Alternative text for images, form labels and error handling""",
    "visual-design": """**VISUAL DESIGN ANALYSIS:**
- Typography hierarchy and readability
- Color usage and brand consistency
- Visual balance, spacing and layout effectiveness
- Visual feedback for interactions""",
    "performance": """**PERFORMANCE ANALYSIS:**
- Perceived performance and loading states
- Image weight and lazy loading cues
- User perception of speed""",
    "mobile-optimization": """**MOBILE OPTIMIZATION ANALYSIS:**
- Touch target sizes (minimum 44x44px)
- Thumb-friendly navigation
- Mobile-specific interaction patterns and one-handed use""",
    "conversion-optimization": """**CONVERSION OPTIMIZATION ANALYSIS:**
- Clear value proposition presentation
- Friction points in the conversion funnel
- Trust signals and call-to-action effectiveness""",
    "brand-consistency": """**BRAND CONSISTENCY ANALYSIS:**
- Design system adherence
- Brand voice and tone in copy
- Visual identity consistency""",
    "error-handling": """**ERROR HANDLING ANALYSIS:**
- Error prevention strategies
- Clear error messaging and recovery paths
- Validation feedback timing""",
}

DEPTH_INSTRUCTIONS = {
    "quick": "Focus on the three most impactful issues only.",
    "standard": "Cover the most impactful issues in each section.",
    "comprehensive": (
        "Be exhaustive: report every issue you can see, including minor polish items."
    ),
}

RESPONSE_FORMAT = """**RESPONSE FORMAT**
Provide your analysis in this EXACT format:

**OVERALL UX SCORE: X/10**

**STRENGTHS:**
- [What works well for this specific user context]

**CRITICAL ISSUES:** (Blocks user success)
- [Issues that prevent task completion]

**MAJOR ISSUES:** (Impacts user experience)
- [Problems that make the interface difficult or unpleasant to use]

**MINOR ISSUES:** (Polish opportunities)
- [Small improvements that would enhance the experience]

**RECOMMENDATIONS:**
- [Specific, actionable fix for each issue]

Optionally add per-dimension scores as "Usability: X/10", "Accessibility: X/10",
"Visual Design: X/10" and "Performance: X/10".
When an issue concerns a specific element, name its CSS selector in backticks
(e.g. `#signup .cta`). When it violates a WCAG success criterion, cite it as
"WCAG 1.4.3"."""

# Specialized focus sections, picked in this order by _select_variant()
SPECIALIZED_FOCUS = {
    "ecommerce": (
        ["usability", "conversion-optimization", "mobile-optimization"],
        """**E-COMMERCE SPECIFIC FOCUS:**
- Product discoverability and presentation
- Shopping cart and checkout flow optimization
- Trust signals and security indicators
- Price presentation and value communication"""
    ),
    "saas": (
        ["usability", "accessibility", "performance"],
        """**SAAS SPECIFIC FOCUS:**
- Dashboard clarity and information hierarchy
- Feature discoverability and onboarding
- Data visualization effectiveness
- Workflow efficiency"""
    ),
    "design-system": (
        ["visual-design", "accessibility", "brand-consistency"],
        """**DESIGN SYSTEM SPECIFIC FOCUS:**
- Component consistency and reusability
- Accessibility built in by default
- Responsive behavior patterns"""
    ),
    "mobile": (
        ["mobile-optimization", "usability", "performance"],
        """**MOBILE APP SPECIFIC FOCUS:**
- Native platform conventions adherence
- Gesture support and touch interactions
- Offline and slow-network states"""
    ),
}


def build_prompt(
    context: AnalysisContext,
    analysis_types: Iterable[str] = ("usability", "accessibility", "visual-design"),
    *,
    depth: str = "standard",
    personas: Optional[Mapping[str, UserPersona]] = None
) -> str:
    """
    Render the analysis prompt for a context.

    A specialized variant is used when the context calls for one
    (e-commerce or SaaS industry, a design system, a mobile device); it
    replaces the requested analysis types with the variant's own and
    appends a focus section.

    Args:
        context: Analysis context to render
        analysis_types: Dimensions to analyze (ignored by specialized variants)
        depth: "quick", "standard" or "comprehensive"
        personas: Named persona presets used to expand string personas

    Returns:
        Prompt text

    Example:
        prompt = build_prompt(context, ["usability", "accessibility"])
    """
    variant = _select_variant(context)
    if variant is None:
        return build_master_prompt(context, analysis_types, depth=depth, personas=personas)

    types, focus = SPECIALIZED_FOCUS[variant]
    master = build_master_prompt(context, types, depth=depth, personas=personas)
    return f"{master}\n\n{focus}"


def build_master_prompt(
    context: AnalysisContext,
    analysis_types: Iterable[str],
    *,
    depth: str = "standard",
    personas: Optional[Mapping[str, UserPersona]] = None
) -> str:
    """Render the general-purpose prompt without specialized focus"""
    types = list(dict.fromkeys(analysis_types))
    persona = _resolve_persona(context.user_context.persona, personas)

    sections = [
        "You are a world-class UX expert, accessibility specialist and design systems "
        "consultant analyzing a user interface through the lens of real user experience.",
        _format_analysis_context(context),
        _format_user_context(context.user_context, persona),
    ]

    business = _format_business_context(context)
    if business:
        sections.append(business)

    technical = _format_technical_context(context)
    if technical:
        sections.append(technical)

    if types:
        instructions = [ANALYSIS_INSTRUCTIONS[t] for t in types if t in ANALYSIS_INSTRUCTIONS]
        sections.append(
            "**ANALYSIS REQUIREMENTS**\n"
            f"Analyze this interface for: {', '.join(types)}\n\n" + "\n\n".join(instructions)
        )

    sections.append(DEPTH_INSTRUCTIONS.get(depth, DEPTH_INSTRUCTIONS["standard"]))
    sections.append(RESPONSE_FORMAT)

    if context.custom_prompt:
        sections.append(f"**ADDITIONAL INSTRUCTIONS**\n{context.custom_prompt.strip()}")

    sections.append(
        f"Remember: this user is {_describe_persona(persona)} at the "
        f'"{context.stage}" stage, trying to "{context.user_intent}". '
        "Be specific, actionable, and focused on real user success."
    )

    return "\n\n".join(sections)


def build_journey_prompt(
    journey_name: str,
    current_stage: str,
    previous_stages: list[str],
    context: AnalysisContext,
    personas: Optional[Mapping[str, UserPersona]] = None
) -> str:
    """Prompt for one stage of a multi-step user journey"""
    master = build_master_prompt(
        context, ["usability", "conversion-optimization"], personas=personas
    )
    journey = [
        "**USER JOURNEY CONTEXT**",
        f"Journey: {journey_name}",
        f"Current Stage: {current_stage}",
    ]
    if previous_stages:
        journey.append(f"Previous Stages: {' -> '.join(previous_stages)}")
    journey.append(
        "- Does this stage follow logically from the previous ones?\n"
        "- Are there clear next steps or exit points?\n"
        "- What context from previous stages should be preserved?"
    )
    return f"{master}\n\n" + "\n".join(journey)


def _select_variant(context: AnalysisContext) -> Optional[str]:
    industry = (context.business_context.industry.lower()
                if context.business_context else "")
    if industry in ("e-commerce", "ecommerce"):
        return "ecommerce"
    if industry == "saas":
        return "saas"
    if context.technical_context and context.technical_context.design_system:
        return "design-system"
    if "mobile" in context.user_context.device_context.lower():
        return "mobile"
    return None


def _resolve_persona(
    persona: Union[str, UserPersona, None],
    personas: Optional[Mapping[str, UserPersona]]
) -> Union[str, UserPersona, None]:
    if isinstance(persona, str) and personas and persona in personas:
        return personas[persona]
    return persona


def _format_analysis_context(context: AnalysisContext) -> str:
    lines = [
        "**ANALYSIS CONTEXT**",
        f"User Stage: {context.stage.strip()}",
        f"User Intent: {context.user_intent.strip()}",
    ]
    if context.page_url:
        lines.append(f"Page: {context.page_url}")
    if context.critical_elements:
        lines.append("Critical Elements (evaluate each one and refer to it by name):")
        lines.extend(f"- [ ] {element}" for element in context.critical_elements)
    return "\n".join(lines)


def _format_user_context(user: UserContext, persona: Union[str, UserPersona, None]) -> str:
    lines = ["**USER CONTEXT**"]
    if isinstance(persona, UserPersona):
        lines.append(f"Persona: {persona.name}")
        lines.append(f"Expertise: {persona.expertise}")
        lines.append(f"Primary Device: {persona.device}")
        lines.append(f"Urgency: {persona.urgency}")
        if persona.goals:
            lines.append(f"Goals: {', '.join(persona.goals)}")
        if persona.pain_points:
            lines.append(f"Pain Points: {', '.join(persona.pain_points)}")
        if persona.context:
            lines.append(f"Context: {persona.context}")
    elif persona:
        lines.append(f"Persona: {persona}")

    lines.append(f"Device Context: {user.device_context}")
    if user.expertise:
        lines.append(f"Expertise Level: {user.expertise}")
    if user.time_constraint:
        lines.append(f"Time Constraint: {user.time_constraint}")
    if user.trust_level:
        lines.append(f"Trust Level: {user.trust_level}")
    if user.business_goals:
        lines.append(f"Business Goals: {', '.join(user.business_goals)}")
    return "\n".join(lines)


def _format_business_context(context: AnalysisContext) -> str:
    business = context.business_context
    if business is None:
        return ""
    fields = [
        ("Industry", business.industry),
        ("Conversion Goal", business.conversion_goal),
        ("Competitive Advantage", business.competitive_advantage),
        ("Brand Personality", business.brand_personality),
        ("Target Audience", business.target_audience),
    ]
    return _format_fields("**BUSINESS CONTEXT**", fields)


def _format_technical_context(context: AnalysisContext) -> str:
    technical = context.technical_context
    if technical is None:
        return ""
    fields = [
        ("Framework", technical.framework),
        ("Design System", technical.design_system),
        ("Device Support", technical.device_support),
        ("Performance Target", technical.performance_target),
        ("Accessibility Target", technical.accessibility_target),
    ]
    return _format_fields("**TECHNICAL CONTEXT**", fields)


def _format_fields(heading: str, fields: list[tuple[str, Optional[str]]]) -> str:
    lines = [f"{label}: {value}" for label, value in fields if value]
    if not lines:
        return ""
    return "\n".join([heading, *lines])


def _describe_persona(persona: Union[str, UserPersona, None]) -> str:
    if not persona:
        return "a general user"
    if isinstance(persona, str):
        return persona
    return f"{persona.name} ({persona.expertise} level, {persona.device} user, {persona.urgency} urgency)"
