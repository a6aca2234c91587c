"""
KnowledgeBase -- business rules the assistant is grounded on, stored as
one JSON file per rule type under `knowledge_base_dir`:

    products.json   {category: [{name, description}, ...]}
    pricing.json    free-form; rendered as pretty JSON
    personas.json   {persona: {indicators: [...], recommendations: [...]}}
    responses.json  {tone, style, guidelines: [...], forbidden: [...]}
    facts.json      [str, ...] short standalone facts

Missing or unparsable files read as empty -- the prompt just loses that
section. Everything written through save_rules() is sanitized first.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from services.intent.safety.sanitizer import sanitize

logger = logging.getLogger(__name__)

DEFAULT_RULE_TYPES: tuple[str, ...] = ("products", "personas", "responses")


class KnowledgeBase:
    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self._cache: dict[str, Any] = {}

    def load_rules(self, rule_type: str) -> Any:
        if rule_type in self._cache:
            return self._cache[rule_type]

        path = self.base_dir / f"{rule_type}.json"
        if not path.is_file():
            logger.info("knowledge base file not found: %s", path.name)
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("failed to parse knowledge base file: %s", path.name, exc_info=True)
            return {}

        self._cache[rule_type] = data
        return data

    def available_bases(self) -> list[str]:
        if not self.base_dir.is_dir():
            return []
        return sorted(p.stem for p in self.base_dir.glob("*.json"))

    def save_rules(self, rule_type: str, rules: Any) -> bool:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            path = self.base_dir / f"{rule_type}.json"
            path.write_text(
                json.dumps(sanitize(rules), ensure_ascii=False, indent=2), encoding="utf-8",
            )
        except OSError:
            logger.warning("failed to write knowledge base file: %s", rule_type, exc_info=True)
            return False
        self._cache.pop(rule_type, None)
        return True

    def facts(self) -> list[str]:
        data = self.load_rules("facts")
        if isinstance(data, dict):
            return [f"{k}: {v}" for k, v in data.items()]
        if isinstance(data, list):
            return [str(item) for item in data]
        return []

    def rules_to_prompt(self, rule_type: str) -> str:
        rules = self.load_rules(rule_type)
        if not rules:
            return ""
        if rule_type == "products" and isinstance(rules, dict):
            return _format_products(rules)
        if rule_type == "personas" and isinstance(rules, dict):
            return _format_personas(rules)
        if rule_type == "responses" and isinstance(rules, dict):
            return _format_responses(rules)
        return json.dumps(rules, ensure_ascii=False, indent=2)

    def system_rules(self, rule_types: tuple[str, ...] = DEFAULT_RULE_TYPES) -> str:
        blocks = [self.rules_to_prompt(rule_type) for rule_type in rule_types]
        return "\n".join(b for b in blocks if b)


def _format_products(rules: dict) -> str:
    lines = ["قوانین محصولات:", ""]
    for category, items in rules.items():
        lines.append(f"دسته‌بندی: {category}")
        for item in items if isinstance(items, list) else []:
            if isinstance(item, dict):
                lines.append(f"  - {item.get('name', '')}: {item.get('description', '')}")
        lines.append("")
    return "\n".join(lines)


def _format_personas(rules: dict) -> str:
    lines = ["قوانین شناسایی پرسونا:", ""]
    for persona, config in rules.items():
        lines.append(f"پرسونای {persona}:")
        if isinstance(config, dict):
            if config.get("indicators"):
                lines.append("  نشانه‌ها:")
                lines.extend(f"    - {x}" for x in config["indicators"])
            if config.get("recommendations"):
                lines.append("  توصیه‌ها:")
                lines.extend(f"    - {x}" for x in config["recommendations"])
        lines.append("")
    return "\n".join(lines)


def _format_responses(rules: dict) -> str:
    lines = ["قوانین پاسخ‌دهی:", ""]
    if rules.get("tone"):
        lines.append(f"لحن: {rules['tone']}")
    if rules.get("style"):
        lines.append(f"سبک: {rules['style']}")
    if rules.get("guidelines"):
        lines.append("")
        lines.append("دستورالعمل‌ها:")
        lines.extend(f"  - {x}" for x in rules["guidelines"])
    if rules.get("forbidden"):
        lines.append("")
        lines.append("ممنوعیت‌ها:")
        lines.extend(f"  - {x}" for x in rules["forbidden"])
    return "\n".join(lines)
