import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

import yaml
from google import genai
from google.genai import types

from src.models.content import CandidateParseResult, CandidateRecord, ParseStatus
from src.utils.error_monitoring import MalformedCandidatePayload

DEFAULT_PROMPTS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    'config',
    'prompts.yaml'
)

MAX_CANDIDATES = 36

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_EVENTS_OBJECT = re.compile(r'\{[\s\S]*?"events"\s*:\s*\[[\s\S]*\}\s*$')

# "1947 - Independence of India: partition ends ..." and "**1969** **Apollo 11**: ..."
_LINE_YEAR_FIRST = re.compile(
    r"^\*{0,2}\s*\**\s*(-?\d{1,4}\s*BCE|\d{3,4})[^\w]+(.+?)\**\s*:\s*(.+)$",
    re.IGNORECASE,
)
_LINE_YEAR_ANYWHERE = re.compile(
    r"^\*{0,2}\s*\**.*?(-?\d{1,4}\s*BCE|\d{3,4})\**[^\w]+(.+?)\s*:\s*(.+)$",
    re.IGNORECASE,
)
# "1947 - Independence of India" without a note
_LINE_YEAR_TITLE_ONLY = re.compile(
    r"^\*{0,2}\s*\**\s*(-?\d{1,4}\s*BCE|\d{3,4})[^\w]+(.+?)\**$",
    re.IGNORECASE,
)
_LINE_BIOGRAPHICAL = re.compile(
    r"^\*{0,2}\s*\**\s*(Birthday of|Death of)\s+(.+?)\**\s*(?::\s*(.+))?$",
    re.IGNORECASE,
)


class AIServiceError(Exception):
    pass


def _load_json_events(text: str) -> Optional[List[Any]]:
    """Strict parse, then fence stripping and extraction of the embedded events object."""
    if not text:
        return None
    try:
        obj = json.loads(text)
    except ValueError:
        match = _EVENTS_OBJECT.search(_FENCE.sub("", text).strip())
        if not match:
            return None
        try:
            obj = json.loads(match.group(0))
        except ValueError:
            return None
    events = obj.get("events") if isinstance(obj, dict) else None
    return events if isinstance(events, list) else None


def _to_candidates(entries: List[Any], limit: int = MAX_CANDIDATES) -> List[CandidateRecord]:
    out: List[CandidateRecord] = []
    for i, entry in enumerate(entries[:limit]):
        if not isinstance(entry, dict):
            continue
        title = str(entry.get("title") or "").strip()
        if not title:
            continue
        year = entry.get("year")
        out.append(CandidateRecord(
            rank=i + 1,
            title=title,
            year=str(year if year is not None else "").strip(),
            note=str(entry.get("note") or "").strip(),
        ))
    return out


def parse_candidate_payload(text: str) -> Optional[List[CandidateRecord]]:
    """
    Parse a provider response in strict mode.

    Returns:
        The candidate list, or None when the payload is not a JSON ``{"events": [...]}`` object
    """
    events = _load_json_events((text or "").strip())
    if events is None:
        return None
    return _to_candidates(events)


def recover_candidates_from_lines(text: str) -> List[CandidateRecord]:
    """Line-oriented recovery of markdown or prose lists ("1947 - Title: note")."""
    recovered: List[Dict[str, str]] = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        match = (
            _LINE_YEAR_FIRST.match(line)
            or _LINE_YEAR_ANYWHERE.match(line)
            or _LINE_YEAR_TITLE_ONLY.match(line)
        )
        if match:
            year_text = re.sub(r"\s*BCE", "", match.group(1), flags=re.IGNORECASE).strip()
            year = year_text if re.fullmatch(r"-?\d+", year_text) else ""
            title = match.group(2).replace("**", "").strip()
            note = match.group(3) if match.re.groups >= 3 else ""
            if title:
                recovered.append({"title": title, "year": year, "note": (note or "").replace("**", "").strip()})
            continue
        bio = _LINE_BIOGRAPHICAL.match(line)
        if bio:
            recovered.append({
                "title": f"{bio.group(1)} {bio.group(2)}".replace("**", "").strip(),
                "year": "",
                "note": (bio.group(3) or "").replace("**", "").strip(),
            })
    return _to_candidates(recovered)


class AIService:
    """
    Generative candidate provider backed by Gemini (Google GenAI SDK).

    The provider is optional: without an API key every call returns an EMPTY result, and no
    provider failure ever propagates to the pipeline.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        prompts_path: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: float = 60.0,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY")
        self.logger = logging.getLogger(__name__)

        # Prompts
        self.prompts_path = prompts_path or DEFAULT_PROMPTS_PATH
        self.prompts = self._load_prompts()

        params = self.prompts.get("parameters", {}) if isinstance(self.prompts, dict) else {}
        model_cfg = params.get("gemini", {}) if isinstance(params, dict) else {}
        self.model = model or os.getenv("GEMINI_MODEL") or model_cfg.get("model", "gemini-2.5-flash")
        self.temperature = float(model_cfg.get("temperature", 0.1))
        self.max_tokens = int(model_cfg.get("max_output_tokens", 2200))
        self.max_candidates = int(params.get("max_candidates", MAX_CANDIDATES))
        self.timeout_seconds = timeout_seconds

        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = genai.Client(api_key=self.api_key)
        else:
            self.client = None
            self.logger.info("GEMINI_API_KEY not set; candidate provider disabled")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _load_prompts(self) -> Dict[str, Any]:
        """Load prompts from YAML configuration file."""
        try:
            with open(self.prompts_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise AIServiceError(f"Prompts file not found at {self.prompts_path}") from e
        except yaml.YAMLError as e:
            raise AIServiceError(f"Error parsing YAML at {self.prompts_path}: {e}") from e

    def build_prompt(self, readable_date: str, mm: str, dd: str, regional: bool = False) -> str:
        key = "candidates_regional" if regional else "candidates_global"
        template = self.prompts.get(key)
        if not template:
            raise AIServiceError(f"Prompt '{key}' missing from {self.prompts_path}")
        return template.format(
            schema_hint=self.prompts.get("schema_hint", ""),
            readable_date=readable_date,
            mm=mm,
            dd=dd,
        )

    async def _call_gemini(self, prompt: str) -> str:
        """Single generate_content call; returns the response text (possibly empty)."""
        config = types.GenerateContentConfig(
            max_output_tokens=self.max_tokens,
            temperature=self.temperature,
            system_instruction=self.prompts.get("system") or None,
        )
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config=config
                ),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise AIServiceError(f"Gemini API call timed out after {self.timeout_seconds:.0f} seconds") from e
        except Exception as e:
            raise AIServiceError(f"Failed to call Gemini API: {e}") from e

        try:
            text = response.text if hasattr(response, 'text') else None
        except ValueError:
            text = None
        return (text or "").strip()

    async def _call_or_empty(self, prompt: str) -> str:
        try:
            return await self._call_gemini(prompt)
        except AIServiceError as e:
            self.logger.warning(f"Candidate call failed: {e}")
            return ""

    async def generate_candidates(
        self,
        readable_date: str,
        mm: str,
        dd: str,
        regional: bool = False,
    ) -> CandidateParseResult:
        """
        Ranked candidate list for a month-day.

        Strict JSON from the main prompt first; then one retry with the schema-only prompt;
        then line recovery over the first response. Never raises.
        """
        if not self.enabled:
            return CandidateParseResult.empty()

        label = "regional" if regional else "global"
        try:
            prompt = self.build_prompt(readable_date, mm, dd, regional=regional)
        except (AIServiceError, KeyError, IndexError) as e:
            self.logger.error(f"Could not build {label} candidate prompt: {e}")
            return CandidateParseResult.empty()

        first = await self._call_or_empty(prompt)
        parsed = parse_candidate_payload(first)
        if parsed is not None:
            return self._result(ParseStatus.PARSED, parsed, label)

        self.logger.warning(
            f"{label} candidates: {MalformedCandidatePayload.__name__} on first response "
            f"({len(first)} chars); retrying with schema-only prompt"
        )
        second = await self._call_or_empty(self.prompts.get("schema_hint", ""))
        parsed = parse_candidate_payload(second)
        if parsed is not None:
            return self._result(ParseStatus.PARSED, parsed, label)

        recovered = recover_candidates_from_lines(first)
        if recovered:
            return self._result(ParseStatus.RECOVERED, recovered, label)

        self.logger.warning(f"{label} candidates: nothing usable in provider output")
        return CandidateParseResult.empty()

    def _result(self, status: ParseStatus, candidates: List[CandidateRecord], label: str) -> CandidateParseResult:
        candidates = candidates[:self.max_candidates]
        if not candidates:
            return CandidateParseResult.empty()
        self.logger.info(f"🧠 {label} candidates: {len(candidates)} ({status.value})")
        return CandidateParseResult(status, tuple(candidates))
