"""
Store Analysis Service

Runs a simulated-shopper audit of a store page:
scrape the page -> pick personas -> ask Claude -> parse -> TestResult.
"""
import asyncio
import json
import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from ghost_cro.connectors.storefront import scrape_storefront
from ghost_cro.schemas import TestResult
from ghost_cro.services.llm_service import LLMService
from ghost_cro.utils.logger import log

PERSONA_MIXES: Dict[str, List[str]] = {
    "balanced": [
        "Budget-Conscious Parent (Age 34, $65K, Mobile)",
        "Impulse Buyer (Age 26, $85K, Mobile)",
        "Skeptical Researcher (Age 45, $120K, Desktop)",
        "Busy Professional (Age 38, $150K, Mobile)",
        "First-Time Visitor (Age 29, $55K, Mobile)",
    ],
    "price-sensitive": [
        "Budget-Conscious Parent (Age 34, $65K, Mobile)",
        "Discount Hunter (Age 28, $45K, Mobile)",
        "Value Seeker (Age 42, $70K, Desktop)",
        "College Student (Age 21, $20K, Mobile)",
        "Thrifty Shopper (Age 55, $50K, Desktop)",
    ],
    "skeptical": [
        "Skeptical Researcher (Age 45, $120K, Desktop)",
        "Privacy-Conscious Buyer (Age 38, $95K, Desktop)",
        "First-Time Visitor (Age 29, $55K, Mobile)",
        "Cautious Senior (Age 62, $85K, Desktop)",
        "Fraud-Wary Shopper (Age 35, $75K, Mobile)",
    ],
    "mobile-heavy": [
        "Mobile-First Millennial (Age 27, $70K, Mobile)",
        "Impulse Buyer (Age 26, $85K, Mobile)",
        "Commuter Shopper (Age 33, $80K, Mobile)",
        "Social Media Browser (Age 24, $55K, Mobile)",
        "On-the-Go Parent (Age 36, $90K, Mobile)",
    ],
}

# GA4 userAgeBracket -> (age, income, persona label)
AGE_PERSONAS = {
    "18-24": (21, "$45K", "Gen Z Shopper"),
    "25-34": (29, "$70K", "Millennial Professional"),
    "35-44": (38, "$95K", "Established Buyer"),
    "45-54": (48, "$110K", "Experienced Shopper"),
    "55-64": (58, "$105K", "Mature Buyer"),
    "65+": (68, "$75K", "Senior Shopper"),
}
DEFAULT_AGE_PERSONA = (35, "$75K", "Typical Shopper")

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class AnalysisError(Exception):
    """Claude's answer could not be turned into a report"""


def get_personas(persona_mix: Optional[str]) -> List[str]:
    """Personas for a mix name ('Price Sensitive' -> price-sensitive); unknown mixes get balanced"""
    normalized = re.sub(r"\s+", "-", (persona_mix or "").lower())
    return list(PERSONA_MIXES.get(normalized, PERSONA_MIXES["balanced"]))


def generate_personas_from_demographics(demographics: Optional[Dict], count: int = 5) -> List[str]:
    """
    Personas shaped like the store's real GA4 audience, formatted
    "Name (Age X, $YK, Device)".

    Empty when age or device data is missing; callers fall back to a mix.
    """
    if not demographics:
        return []

    ages = [a for a in demographics.get("ageGroups") or [] if a.get("ageRange") and a["ageRange"] != "Unknown"][:3]
    devices = [
        d for d in demographics.get("devices") or []
        if d.get("deviceCategory") and d["deviceCategory"] != "Unknown"
    ][:2]
    locations = (demographics.get("locations") or [])[:3]

    if not ages or not devices:
        return []

    personas = []
    for i in range(count):
        age, income, label = AGE_PERSONAS.get(ages[i % len(ages)]["ageRange"], DEFAULT_AGE_PERSONA)

        category = devices[i % len(devices)]["deviceCategory"]
        device = {"mobile": "Mobile", "tablet": "Tablet"}.get(category, "Desktop")

        name = label
        if locations:
            location = locations[i % len(locations)]
            place = location.get("city") or location.get("country")
            if place:
                name = f"{place} {label}"

        personas.append(f"{name} (Age {age}, {income}, {device})")

    return personas


def _bullet_list(items: List[str]) -> str:
    return ", ".join(items) if items else "None visible"


def build_analysis_prompt(url: str, scraped: Dict, personas: List[str]) -> str:
    persona_lines = "\n".join(f"{i}. {p}" for i, p in enumerate(personas, 1))

    return f"""You are an expert Shopify conversion optimization analyst specializing in cart-to-checkout flow analysis.

URL PROVIDED: {url}

ACTUAL PAGE DATA SCRAPED:
- Product/Page Title: {scraped['title']}
- Price Shown: {scraped['price']}
- Description: {scraped['description']}
- Trust Signals Found: {_bullet_list(scraped['trustSignals'])}
- Shipping Info: {scraped['shippingInfo']}
- Reviews: {scraped['reviews']['count']} reviews, {scraped['reviews']['rating']} rating
- Payment Methods Visible: {_bullet_list(scraped['paymentMethods'])}
- Cart Information: {scraped['cartInfo']}

Base the analysis on this scraped data. Call out what is and is not visible.

Walk the product page -> cart page -> checkout flow as each of these {len(personas)} shoppers:
{persona_lines}

For each shopper decide purchase or abandon, give their first-person reasoning, and if they
abandon, the exact point in the journey (e.g. "Cart page - saw shipping costs").

Then grade the flow (0-100), list critical/high/medium friction points, what is working,
and prioritized fixes with estimated conversion impact.

Return ONLY a JSON object with this exact structure:
{{
  "score": <number 0-100>,
  "personaResults": [
    {{"name": "<persona name>", "demographics": "<age, income, device>", "verdict": "<purchase or abandon>",
      "reasoning": "<first-person quote>", "abandonPoint": "<where they left, or null>"}}
  ],
  "frictionPoints": {{
    "critical": [{{"title": "", "location": "", "impact": "<% abandonment>", "affected": "", "fix": ""}}],
    "high": [...same structure...],
    "medium": [...same structure...],
    "working": ["<positive element>"]
  }},
  "recommendations": [
    {{"priority": <1, 2, 3...>, "title": "", "impact": "", "effort": "<low, medium, or high>", "description": ""}}
  ],
  "funnelData": {{"landed": 1000, "cart": <number>, "checkout": <number>, "purchased": <number>}}
}}

No markdown, no code fences, no commentary outside the JSON."""


def parse_analysis_response(text: str) -> Dict:
    """
    Parse Claude's JSON, tolerating a ```json fence or chatter around the
    object. Raises AnalysisError if nothing parses.
    """
    candidates = [text.strip()]

    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    log.error(f"Failed to parse Claude response: {text[:500]}")
    raise AnalysisError("Invalid JSON response from Claude")


def generate_test_id(now_ms: Optional[int] = None) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"test_{now_ms if now_ms is not None else int(time.time() * 1000)}_{suffix}"


def build_test_result(analysis: Dict, url: str, persona_mix: str, test_id: Optional[str] = None) -> TestResult:
    """Attach ids and counts to the parsed analysis"""
    friction = analysis.get("frictionPoints") or {}

    friction_points = {
        severity: [{**point, "id": f"{severity}_{i}"} for i, point in enumerate(friction.get(severity) or [])]
        for severity in ("critical", "high", "medium")
    }
    friction_points["working"] = friction.get("working") or []

    persona_results = [
        {**persona, "id": f"persona_{i}"} for i, persona in enumerate(analysis.get("personaResults") or [])
    ]

    issues_found = sum(len(friction_points[s]) for s in ("critical", "high", "medium"))

    try:
        return TestResult(
            id=test_id or generate_test_id(),
            date=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            url=url,
            persona_mix=persona_mix,
            score=max(0, min(100, int(analysis.get("score", 0)))),
            issues_found=issues_found,
            status="completed",
            friction_points=friction_points,
            persona_results=persona_results,
            recommendations=analysis.get("recommendations") or [],
            funnel_data=analysis.get("funnelData") or {},
        )
    except (ValidationError, TypeError, ValueError) as e:
        raise AnalysisError(f"Analysis did not match the report format: {str(e)}") from e


class AnalysisService:
    """
    Runs one store analysis

    Args:
        llm: Claude wrapper
        scraper: async url -> scraped page dict (defaults to the storefront scraper)
    """

    def __init__(self, llm: LLMService, scraper: Optional[Callable] = None):
        self.llm = llm
        self.scraper = scraper or scrape_storefront

    async def analyze(self, url: str, persona_mix: str = "balanced", personas: Optional[List[str]] = None) -> TestResult:
        personas = personas or get_personas(persona_mix)
        log.info(f"Analyzing {url} with persona mix '{persona_mix}'")

        scraped = await self.scraper(url)
        prompt = build_analysis_prompt(url, scraped, personas)

        response_text = await asyncio.to_thread(self.llm.complete, prompt)
        analysis = parse_analysis_response(response_text)

        result = build_test_result(analysis, url, persona_mix)
        log.info(f"Analysis {result.id} for {url}: score {result.score}, {result.issues_found} issues")
        return result
