"""Packs instructions, memory, business context and history into one prompt."""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel

from llm.markers import REPLY_MARKER, ACTIONS_MARKER
from memory.conversation_store import ConversationMemoryStore, conversation_key
from schemas.conversation import ConversationState, Lang
from schemas.request import (
    AiMode,
    AskOpts,
    BusinessContext,
    ChatHistoryMsg,
    ChatRole,
    GatewayRequest,
)
from utils.text import clean, safe_slice
from .language import LanguageHeuristic, is_short_ambiguous

logger = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 12_000
MAX_HISTORY_ITEMS = 10
MAX_HISTORY_TEXT_CHARS = 800
MAX_PACKED_CHARS_TO_SEND = 6_000
MAX_CONTEXT_CHARS = 1_200
MAX_ID_CHARS = 128
MAX_CURRENCY_CHARS = 32
MAX_REGION_CHARS = 64
PROMPT_HISTORY_TURNS = 12

# Per-field clamps for business context values
CONTEXT_LIMITS = {
    "org_id": MAX_ID_CHARS,
    "active_org_id": MAX_ID_CHARS,
    "active_store_id": MAX_ID_CHARS,
    "active_org_name": MAX_CONTEXT_CHARS,
    "active_store_name": MAX_CONTEXT_CHARS,
    "active_role": MAX_CONTEXT_CHARS,
    "currency": MAX_CURRENCY_CHARS,
    "timezone": MAX_REGION_CHARS,
    "country": MAX_REGION_CHARS,
}

JSON_SCHEMA_LINES = [
    "{",
    '  "lang": "sw" | "en" | "auto",',
    '  "nextMove": "string",',
    '  "actions": [ { "title": "string", "steps": ["string"], "priority": "LOW"|"MEDIUM"|"HIGH", "eta": "string" } ],',
    '  "memory": {',
    '    "topic": "string",',
    '    "objective": "string",',
    '    "lastPlan": "string",',
    '    "strategyLevel": "IDEA" | "PLAN" | "EXECUTION"',
    "  }",
    "}",
]


def sanitize_history(history: Optional[List[ChatHistoryMsg]]) -> List[ChatHistoryMsg]:
    """Keep the last 10 turns, each trimmed and clamped to 800 chars; drop empties."""
    recent = list(history or [])[-MAX_HISTORY_ITEMS:]
    out = []
    for msg in recent:
        text = safe_slice(clean(msg.text), MAX_HISTORY_TEXT_CHARS)
        if not text:
            continue
        role = ChatRole.ASSISTANT if msg.role == ChatRole.ASSISTANT else ChatRole.USER
        out.append(ChatHistoryMsg(role=role, text=text))
    return out


def sanitize_context(context: Optional[BusinessContext]) -> Optional[BusinessContext]:
    """Clamp every business context field to its own maximum length."""
    if context is None:
        return None
    values = {}
    for field, limit in CONTEXT_LIMITS.items():
        value = getattr(context, field)
        values[field] = safe_slice(value, limit) if isinstance(value, str) else value
    return BusinessContext(**values)


class PromptPackage(BaseModel):
    """Everything produced for one outbound request."""
    packed: str
    request: GatewayRequest
    conversation_key: str
    override_lang: Optional[Lang] = None


class PromptBuilder:
    """Builds the bounded instruction package for the gateway."""

    def __init__(
        self,
        memory_store: ConversationMemoryStore,
        prompt_config_path: Optional[str] = None,
        heuristic: Optional[LanguageHeuristic] = None
    ):
        """
        Initialize prompt builder.

        Args:
            memory_store: Source of conversation continuity state
            prompt_config_path: Path to prompt.yaml (defaults to config/prompt.yaml)
            heuristic: Language classifier for the AUTO stabilizer
        """
        if prompt_config_path is None:
            base_path = Path(__file__).parent.parent
            prompt_config_path = base_path / "config" / "prompt.yaml"

        with open(prompt_config_path, "r", encoding="utf-8") as f:
            self.prompt_config = yaml.safe_load(f) or {}

        self.memory_store = memory_store
        self.heuristic = heuristic or LanguageHeuristic(
            self.prompt_config.get("swahili_markers", [])
        )

    def _lines(self, section: str) -> List[str]:
        return list(self.prompt_config.get(section) or [])

    def language_directive(self, mode: AiMode, override_lang: Optional[Lang] = None) -> str:
        """Explicit SW/EN always wins; AUTO uses the override when one was resolved."""
        directives = self.prompt_config.get("language") or {}
        if mode == AiMode.SW:
            lang = Lang.SW
        elif mode == AiMode.EN:
            lang = Lang.EN
        elif override_lang in (Lang.SW, Lang.EN):
            lang = override_lang
        else:
            lang = Lang.AUTO
        return directives.get(lang.value, "")

    def build_system_prompt(self, mode: AiMode, override_lang: Optional[Lang] = None) -> str:
        """System instructions: persona, language and the two-block output contract."""
        body = []
        body.extend(self._lines("persona"))
        body.extend(self._lines("relevance_rules"))
        body.append(f"LANGUAGE: {self.language_directive(mode, override_lang)}")
        body.append("")
        body.append("OUTPUT FORMAT - MUST FOLLOW EXACTLY:")
        body.append("Return TWO blocks using these exact markers:")
        body.append(REPLY_MARKER)
        body.append("(User-facing answer in markdown, structured, with clear sections and a final NEXT MOVE.)")
        body.append(ACTIONS_MARKER)
        body.append("(STRICT JSON only, no markdown fences.)")
        body.append("")
        body.append("JSON schema (STRICT):")
        body.extend(JSON_SCHEMA_LINES)
        body.append("")
        body.extend(self._lines("memory_rules"))
        body.append("")
        body.extend(self._lines("coach_structure"))

        return "\n".join(f"SYSTEM: {line}" if line else "" for line in body)

    @staticmethod
    def format_memory_block(state: ConversationState) -> str:
        lines = ["CONVERSATION MEMORY (continuity):"]
        if state.topic:
            lines.append(f"- topic: {state.topic}")
        if state.objective:
            lines.append(f"- objective: {state.objective}")
        if state.strategy_level:
            lines.append(f"- strategyLevel: {state.strategy_level.value}")
        if state.last_plan:
            lines.append(f"- lastPlan: {state.last_plan}")
        if state.lang:
            lines.append(f"- lastLang: {state.lang.value}")
        lines.append("SYSTEM: Use memory ONLY if relevant to the USER MESSAGE.")
        lines.append("SYSTEM: If the USER MESSAGE is a new topic, ignore memory and answer directly.")
        return "\n".join(lines)

    @staticmethod
    def format_context_block(context: Optional[BusinessContext]) -> Optional[str]:
        if context is None:
            return None

        fields = [
            ("orgId", clean(context.org_id) or clean(context.active_org_id)),
            ("orgName", clean(context.active_org_name)),
            ("storeId", clean(context.active_store_id)),
            ("storeName", clean(context.active_store_name)),
            ("role", clean(context.active_role)),
            ("country", clean(context.country)),
            ("currency", clean(context.currency)),
            ("timezone", clean(context.timezone)),
        ]
        present = [(name, value) for name, value in fields if value]
        if not present:
            return None

        lines = ["CONTEXT (business):"]
        lines.extend(f"- {name}: {value}" for name, value in present)
        return "\n".join(lines)

    @staticmethod
    def format_history_block(history: List[ChatHistoryMsg]) -> Optional[str]:
        lines = []
        for msg in history[-PROMPT_HISTORY_TURNS:]:
            text = clean(msg.text)
            if not text:
                continue
            role = "ASSISTANT" if msg.role == ChatRole.ASSISTANT else "USER"
            lines.append(f"{role}: {text}")
        if not lines:
            return None
        return "\n".join(["CHAT HISTORY (most recent last):"] + lines)

    def resolve_override_lang(
        self,
        message: str,
        mode: AiMode,
        memory: Optional[ConversationState],
        history: List[ChatHistoryMsg]
    ) -> Optional[Lang]:
        """
        Pick a language for short AUTO messages like "Habari" or "ok".

        Stored memory language wins over the history heuristic.
        """
        if mode != AiMode.AUTO or not is_short_ambiguous(message):
            return None
        if memory is not None and memory.lang in (Lang.SW, Lang.EN):
            return memory.lang
        return self.heuristic.last_user_lang(history)

    def build(self, message: str, opts: Optional[AskOpts] = None) -> PromptPackage:
        """
        Build the packed prompt and the outbound request body.

        Args:
            message: User message
            opts: Request options

        Returns:
            PromptPackage; request.packed is only set when the packed prompt
            fits under the send ceiling
        """
        opts = opts or AskOpts()
        key = conversation_key(opts)
        text = clean(message)

        history = sanitize_history(opts.history)
        context = sanitize_context(opts.context)
        memory = self.memory_store.get(key)
        override_lang = self.resolve_override_lang(text, opts.mode, memory, history)

        blocks = [self.build_system_prompt(opts.mode, override_lang)]
        if memory is not None:
            blocks.append(self.format_memory_block(memory))

        context_block = self.format_context_block(context)
        if context_block:
            blocks.append(context_block)

        history_block = self.format_history_block(history)
        if history_block:
            blocks.append(history_block)

        blocks.append(f"USER MESSAGE:\n{text}")
        packed = "\n\n".join(blocks)

        if len(packed) > MAX_PACKED_CHARS_TO_SEND:
            logger.info(
                f"Packed prompt is {len(packed)} chars, over {MAX_PACKED_CHARS_TO_SEND}; "
                "sending structured fields only"
            )

        request = GatewayRequest(
            text=text,
            mode=opts.mode,
            context=context,
            history=history,
            packed=packed if len(packed) <= MAX_PACKED_CHARS_TO_SEND else None,
            model_hint=opts.model_hint,
            reasoning_tier=opts.reasoning_tier,
        )

        return PromptPackage(
            packed=packed,
            request=request,
            conversation_key=key,
            override_lang=override_lang,
        )
