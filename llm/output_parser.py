"""Reduces raw two-block model output into a typed AiMeta."""

import json
import logging
import time
from typing import Any, Callable, List, Optional

from schemas.conversation import ConversationState, Lang, StrategyLevel
from schemas.responses import (
    ActionItem,
    ActionValidation,
    AiMeta,
    ParseReport,
    Priority,
    RejectedAction,
    ValidAction,
)
from utils.text import clean
from .markers import REPLY_MARKER, ACTIONS_MARKER

logger = logging.getLogger(__name__)

_PRIORITIES = {p.value: p for p in Priority}
_LANGS = {lang.value: lang for lang in Lang}
_STRATEGY_LEVELS = {s.value: s for s in StrategyLevel}


def _clean_str(value: Any) -> str:
    # Only real strings count; numbers/objects are not titles
    return value.strip() if isinstance(value, str) else ""


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    body = text[3:]
    if body.startswith("json"):
        body = body[4:]
    end = body.rfind("```")
    if end != -1:
        body = body[:end]
    return body.strip()


def extract_reply(raw: str) -> str:
    """
    Extract the reply portion of possibly incomplete output.

    Used while streaming: everything after the reply marker up to the
    actions marker, or the whole text if the reply marker has not arrived.
    """
    s = raw or ""
    i_reply = s.find(REPLY_MARKER)
    if i_reply == -1:
        return clean(s)
    after = s[i_reply + len(REPLY_MARKER):]
    i_act = after.find(ACTIONS_MARKER)
    if i_act == -1:
        return clean(after)
    return clean(after[:i_act])


def validate_action(raw: Any) -> ActionValidation:
    """
    Validate one action payload from the model.

    Returns:
        ValidAction with a clean ActionItem, or RejectedAction with the reason
    """
    if not isinstance(raw, dict):
        return RejectedAction(reason="action is not an object", raw=raw)

    title = _clean_str(raw.get("title"))
    if not title:
        return RejectedAction(reason="missing title", raw=raw)

    steps = None
    if isinstance(raw.get("steps"), list):
        steps = [s for s in (_clean_str(x) for x in raw["steps"]) if s]

    return ValidAction(item=ActionItem(
        title=title,
        steps=steps,
        priority=_PRIORITIES.get(raw.get("priority")) if isinstance(raw.get("priority"), str) else None,
        eta=_clean_str(raw.get("eta")) or None,
    ))


class OutputParser:
    """Parses the model's `<reply marker> markdown <actions marker> JSON` output."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Time source used to stamp parsed memory
        """
        self.clock = clock

    def parse(self, raw: str) -> AiMeta:
        """Best-effort parse; never raises."""
        return self.parse_with_report(raw).meta

    def parse_with_report(self, raw: str) -> ParseReport:
        """
        Parse and report what was dropped along the way.

        Args:
            raw: Raw model text

        Returns:
            ParseReport with the AiMeta and rejected actions
        """
        s = clean(raw)
        i_reply = s.find(REPLY_MARKER)
        i_act = s.find(ACTIONS_MARKER)

        if i_reply == -1 or i_act == -1 or i_act <= i_reply:
            return ParseReport(meta=AiMeta(text=s, actions=[], lang=Lang.AUTO))

        reply = clean(s[i_reply + len(REPLY_MARKER):i_act])
        json_part = _strip_code_fence(clean(s[i_act + len(ACTIONS_MARKER):]))

        try:
            parsed = json.loads(json_part)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Action block is not valid JSON: {e}")
            return ParseReport(
                meta=AiMeta(text=reply or s, actions=[], lang=Lang.AUTO),
                markers_found=True,
            )

        if not isinstance(parsed, dict):
            logger.warning(f"Action block is JSON but not an object: {type(parsed).__name__}")
            return ParseReport(
                meta=AiMeta(text=reply or s, actions=[], lang=Lang.AUTO),
                markers_found=True,
            )

        actions: List[ActionItem] = []
        rejected: List[RejectedAction] = []
        raw_actions = parsed.get("actions")
        if isinstance(raw_actions, list):
            for entry in raw_actions:
                result = validate_action(entry)
                if isinstance(result, ValidAction):
                    actions.append(result.item)
                else:
                    rejected.append(result)
        elif raw_actions is not None:
            rejected.append(RejectedAction(reason="actions is not a list", raw=raw_actions))

        if rejected:
            logger.info(f"Dropped {len(rejected)} invalid action(s): {[r.reason for r in rejected]}")

        raw_lang = parsed.get("lang")
        lang = _LANGS.get(raw_lang, Lang.AUTO) if isinstance(raw_lang, str) else Lang.AUTO

        meta = AiMeta(
            text=reply or s,
            actions=actions,
            next_move=_clean_str(parsed.get("nextMove")) or None,
            lang=lang,
            memory=self._parse_memory(parsed.get("memory"), lang),
        )
        return ParseReport(meta=meta, markers_found=True, json_valid=True, rejected=rejected)

    def _parse_memory(self, raw: Any, lang: Lang) -> Optional[ConversationState]:
        if not isinstance(raw, dict):
            return None

        level = raw.get("strategyLevel")
        return ConversationState(
            topic=_clean_str(raw.get("topic")) or None,
            objective=_clean_str(raw.get("objective")) or None,
            last_plan=_clean_str(raw.get("lastPlan")) or None,
            strategy_level=_STRATEGY_LEVELS.get(level) if isinstance(level, str) else None,
            lang=lang,
            # The payload's own timestamp is never trusted
            updated_at=self.clock(),
        )
